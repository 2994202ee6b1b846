from __future__ import annotations

from dataclasses import dataclass
import json
import os
import re
from typing import Any
from urllib import request as urlrequest
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode


@dataclass(eq=False)
class HTTPCallError(Exception):
    status: int
    detail: str

    @property
    def code(self) -> str:
        if self.status == 0:
            return "network_error"
        return f"http_{self.status}"

    @property
    def retryable(self) -> bool:
        return self.status == 0 or self.status == 429 or self.status >= 500

    def __str__(self) -> str:
        return f"http_{self.status}: {self.detail}" if self.status else f"network_error: {self.detail}"


def default_timeout() -> int:
    return int(os.getenv("HTTP_TIMEOUT_S", "30"))


_BEARER = re.compile(r"Bearer\s+[^\s\"',]+")


def sanitize(message: str) -> str:
    text = (message or "").replace("\n", " ")
    text = _BEARER.sub("Bearer [redacted]", text)
    return text[:300]


def build_url(base: str, path: str, params: dict[str, Any] | None = None) -> str:
    url = f"{base.rstrip('/')}/{path.lstrip('/')}"
    if params:
        url = f"{url}?{urlencode(params, doseq=True)}"
    return url


def request_raw(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    data: bytes | None = None,
    timeout: int | None = None,
) -> tuple[int, bytes]:
    req = urlrequest.Request(url=url, data=data, method=method, headers=headers or {})
    try:
        with urlrequest.urlopen(req, timeout=max(5, timeout or default_timeout())) as resp:
            return resp.status, resp.read()
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise HTTPCallError(status=exc.code, detail=sanitize(detail)) from exc
    except URLError as exc:
        raise HTTPCallError(status=0, detail=sanitize(str(exc))) from exc


def request_json(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    payload: Any = None,
    timeout: int | None = None,
) -> Any:
    all_headers = {"Accept": "application/json"}
    data = None
    if payload is not None:
        all_headers["Content-Type"] = "application/json"
        data = json.dumps(payload).encode("utf-8")
    all_headers.update(headers or {})
    _, body = request_raw(method, url, headers=all_headers, data=data, timeout=timeout)
    if not body:
        return None
    try:
        return json.loads(body.decode("utf-8"))
    except json.JSONDecodeError as exc:
        raise HTTPCallError(status=502, detail=f"invalid JSON body: {exc}") from exc
