from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class GenerationError(Exception):
    code: str
    message: str
    provider: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.code}({self.provider}): {self.message}"
