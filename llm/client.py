from __future__ import annotations

from dataclasses import dataclass
import hashlib
import logging
import os
import time
from typing import Any, Sequence

from backend.http import HTTPCallError, build_url, request_json, sanitize

logger = logging.getLogger(__name__)

Message = dict[str, str]


@dataclass(frozen=True)
class ChatRoute:
    provider: str
    model: str
    base_url: str
    temperature: float
    timeout_s: int
    retries: int
    breaker_threshold: int
    breaker_cooldown_s: int
    max_tokens: int


@dataclass(eq=False)
class LLMError(Exception):
    code: str
    message: str
    provider: str = "openai"
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.code}({self.provider}): {self.message}"


def load_route() -> ChatRoute:
    return ChatRoute(
        provider=os.getenv("LLM_PROVIDER", "openai").strip().lower(),
        model=os.getenv("OPENAI_MODEL", "gpt-4o").strip(),
        base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").strip().rstrip("/"),
        temperature=float(os.getenv("OPENAI_TEMPERATURE", "0.7")),
        timeout_s=int(os.getenv("LLM_TIMEOUT_S", "45")),
        retries=int(os.getenv("LLM_RETRIES", "2")),
        breaker_threshold=int(os.getenv("LLM_BREAKER_THRESHOLD", "5")),
        breaker_cooldown_s=int(os.getenv("LLM_BREAKER_COOLDOWN_S", "60")),
        max_tokens=int(os.getenv("LLM_MAX_TOKENS", "1200")),
    )


def _empty_bucket() -> dict[str, float]:
    return {
        "calls": 0.0,
        "success": 0.0,
        "errors": 0.0,
        "retries": 0.0,
        "latency_ms_total": 0.0,
        "prompt_tokens_total": 0.0,
        "completion_tokens_total": 0.0,
    }


class ChatClient:
    """Chat completions with the caller's own API key.

    Keys belong to dashboard users, so breaker state is tracked per key
    fingerprint and model rather than per process.
    """

    def __init__(self, route: ChatRoute | None = None) -> None:
        self._route = route
        self._failures: dict[str, int] = {}
        self._breaker_until: dict[str, float] = {}
        self._metrics: dict[str, dict[str, float]] = {}

    @property
    def route(self) -> ChatRoute:
        return self._route or load_route()

    def get_metrics_snapshot(self) -> dict[str, Any]:
        return {"routes": {key: dict(bucket) for key, bucket in self._metrics.items()}}

    def complete(
        self,
        messages: Sequence[Message],
        *,
        api_key: str | None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        route = self.route
        if not api_key:
            raise LLMError(
                code="missing_api_key",
                message="No LLM API key configured for this user",
                provider=route.provider,
            )
        breaker_key = f"{hashlib.sha256(api_key.encode('utf-8')).hexdigest()[:12]}:{route.model}"
        now_ts = time.time()
        if self._breaker_until.get(breaker_key, 0) > now_ts:
            raise LLMError(
                code="circuit_open",
                message="Too many consecutive failures, try again shortly",
                provider=route.provider,
                retryable=True,
            )
        payload: dict[str, Any] = {
            "model": route.model,
            "messages": [dict(message) for message in messages],
            "temperature": route.temperature if temperature is None else temperature,
            "max_tokens": max(1, min(max_tokens or route.max_tokens, route.max_tokens)),
        }
        start = time.perf_counter()
        try:
            response = self._call_with_retries(route, api_key, payload)
            text = self._extract_text(route, response)
        except LLMError:
            fail_count = self._failures.get(breaker_key, 0) + 1
            self._failures[breaker_key] = fail_count
            self._track(route, success=False)
            if fail_count >= route.breaker_threshold:
                self._breaker_until[breaker_key] = now_ts + route.breaker_cooldown_s
            raise
        self._failures[breaker_key] = 0
        usage = response.get("usage") or {}
        self._track(
            route,
            success=True,
            latency_ms=(time.perf_counter() - start) * 1000.0,
            prompt_tokens=float(usage.get("prompt_tokens", 0) or 0),
            completion_tokens=float(usage.get("completion_tokens", 0) or 0),
        )
        return text

    def _extract_text(self, route: ChatRoute, response: Any) -> str:
        try:
            content = response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError(
                code="invalid_response",
                message=f"Unexpected completion shape: {exc}",
                provider=route.provider,
            ) from exc
        if not isinstance(content, str):
            raise LLMError(
                code="invalid_response",
                message="LLM response content is not text",
                provider=route.provider,
            )
        return content

    def _call_with_retries(self, route: ChatRoute, api_key: str, payload: dict[str, Any]) -> dict[str, Any]:
        last_error: LLMError | None = None
        for attempt in range(route.retries + 1):
            try:
                return self._call_chat_completion(route, api_key, payload)
            except LLMError as exc:
                last_error = exc
                if attempt > 0:
                    self._track_retry(route)
                if not exc.retryable or attempt >= route.retries:
                    break
                logger.warning("chat completion attempt %s failed: %s", attempt + 1, exc)
                time.sleep(min(2**attempt, 3))
        assert last_error is not None
        raise last_error

    def _call_chat_completion(self, route: ChatRoute, api_key: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            body = request_json(
                "POST",
                build_url(route.base_url, "/chat/completions"),
                headers={"Authorization": f"Bearer {api_key}"},
                payload=payload,
                timeout=route.timeout_s,
            )
        except HTTPCallError as exc:
            raise LLMError(
                code=exc.code,
                message=sanitize(exc.detail),
                provider=route.provider,
                retryable=exc.retryable,
            ) from exc
        if not isinstance(body, dict):
            raise LLMError(code="invalid_response", message="empty completion", provider=route.provider)
        return body

    def _bucket(self, route: ChatRoute) -> dict[str, float]:
        return self._metrics.setdefault(f"{route.provider}|{route.model}", _empty_bucket())

    def _track(
        self,
        route: ChatRoute,
        *,
        success: bool,
        latency_ms: float = 0.0,
        prompt_tokens: float = 0.0,
        completion_tokens: float = 0.0,
    ) -> None:
        bucket = self._bucket(route)
        bucket["calls"] += 1
        if success:
            bucket["success"] += 1
            bucket["latency_ms_total"] += max(0.0, latency_ms)
            bucket["prompt_tokens_total"] += max(0.0, prompt_tokens)
            bucket["completion_tokens_total"] += max(0.0, completion_tokens)
        else:
            bucket["errors"] += 1

    def _track_retry(self, route: ChatRoute) -> None:
        self._bucket(route)["retries"] += 1
