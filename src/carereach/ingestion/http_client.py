"""
HTTP client shared by every source adapter.

All provider traffic goes through `ProviderHttpClient` so that:
- every call carries an explicit timeout (a hung provider must not stall the chain),
- transient statuses (429/502/503/504) are retried with backoff, honoring Retry-After,
- calls are throttled per client (public Overpass mirrors rate-limit aggressively),
- JSON GETs can be served from the on-disk cache between runs.

Failures surface as `ProviderNetworkError` (unreachable, timeout, non-2xx) or
`ProviderParseError` (body is not what was asked for). Adapters turn those into
a `FetchOutcome`; nothing here ever decides about fallbacks.
"""

from __future__ import annotations

import gzip
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable

# `requests` is a lightweight HTTP client; we use it with explicit timeouts.
import requests

from carereach.cache import DiskCache
from carereach.errors import ProviderNetworkError, ProviderParseError
from carereach.log import LOGGER_NAME

TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})
DEFAULT_USER_AGENT = "carereach/0.1 (+facility discovery ingestion)"


def _safe_response_text(resp: requests.Response, *, limit: int = 300) -> str:
    try:
        text = resp.text
    except (UnicodeDecodeError, AttributeError):
        return "<unreadable response body>"
    return str(text).strip()[:limit]


@dataclass
class ProviderHttpClient:
    cache: DiskCache | None = None
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout_s: float = 30.0
    min_request_interval_s: float = 0.0
    max_retries: int = 2
    retry_backoff_initial_s: float = 1.0
    retry_backoff_max_s: float = 20.0
    # Tests stub sleeping so retries run instantly.
    sleep_fn: Callable[[float], None] | None = None
    # The daemon records rate-limit events into its status file through this hook.
    on_retry: Callable[[dict[str, Any]], None] | None = None
    logger: logging.Logger | None = None
    session: requests.Session | None = None
    _last_call_monotonic_s: float = 0.0

    @classmethod
    def from_settings(cls, settings: dict[str, Any], *, cache: DiskCache | None = None) -> "ProviderHttpClient":
        http = settings.get("http", {}) or {}
        return cls(
            cache=cache,
            user_agent=str(http.get("user_agent", DEFAULT_USER_AGENT)),
            request_timeout_s=float(http.get("timeout_s", 30)),
            min_request_interval_s=float(http.get("min_request_interval_s", 0.0)),
            max_retries=int(http.get("max_retries", 2)),
            retry_backoff_initial_s=float(http.get("retry_backoff_initial_s", 1.0)),
            retry_backoff_max_s=float(http.get("retry_backoff_max_s", 20.0)),
            logger=logging.getLogger(LOGGER_NAME),
        )

    def _log(self) -> logging.Logger:
        return self.logger or logging.getLogger(LOGGER_NAME)

    def _http(self) -> requests.Session:
        if self.session is None:
            self.session = requests.Session()
        return self.session

    def _sleep(self, seconds: float) -> None:
        (self.sleep_fn or time.sleep)(max(0.0, float(seconds)))

    def _throttle(self) -> None:
        min_dt = float(self.min_request_interval_s)
        if min_dt <= 0:
            return
        # Monotonic time keeps the spacing stable across wall-clock changes.
        dt = time.monotonic() - float(self._last_call_monotonic_s)
        if dt < min_dt:
            self._sleep(min_dt - dt)
        self._last_call_monotonic_s = time.monotonic()

    def _retry_delay(self, resp: requests.Response, attempt: int) -> tuple[float, str | None]:
        cap = float(self.retry_backoff_max_s)
        retry_after = resp.headers.get("Retry-After") if hasattr(resp, "headers") else None
        if retry_after:
            try:
                # Capped so a mirror asking for hours cannot park the fallback chain.
                return min(cap, max(0.0, float(retry_after))), str(retry_after)
            except ValueError:
                pass
        base = float(self.retry_backoff_initial_s) * (2 ** attempt)
        # Jitter keeps restarted workers from hitting a mirror in lockstep.
        return min(cap, base) + random.uniform(0, 0.25), None

    def request(
        self,
        method: str,
        url: str,
        *,
        provider: str | None = None,
        timeout_s: float | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        timeout = float(timeout_s if timeout_s is not None else self.request_timeout_s)
        headers = {"User-Agent": self.user_agent}
        headers.update(kwargs.pop("headers", None) or {})

        resp: requests.Response | None = None
        for attempt in range(int(self.max_retries) + 1):
            self._throttle()
            try:
                resp = self._http().request(method, url, headers=headers, timeout=timeout, **kwargs)
            except requests.Timeout as e:
                raise ProviderNetworkError(f"{method} {url} timed out after {timeout:.0f}s", provider=provider) from e
            except requests.RequestException as e:
                raise ProviderNetworkError(f"{method} {url} failed: {e}", provider=provider) from e

            if resp.status_code in TRANSIENT_STATUSES and attempt < int(self.max_retries):
                sleep_s, retry_after = self._retry_delay(resp, attempt)
                if self.on_retry is not None:
                    try:
                        self.on_retry(
                            {
                                "ts_epoch_s": int(time.time()),
                                "provider": provider,
                                "url": url,
                                "method": method,
                                "status_code": int(resp.status_code),
                                "attempt": int(attempt + 1),
                                "max_retries": int(self.max_retries),
                                "retry_after": retry_after,
                                "sleep_s": float(sleep_s),
                            }
                        )
                    except Exception as cb_error:
                        # A broken status hook must not break ingestion.
                        self._log().warning("on_retry callback failed: %s", cb_error)
                self._log().warning(
                    "%s transient error %s, retrying in %.2fs (attempt %s/%s)",
                    provider or url,
                    resp.status_code,
                    sleep_s,
                    attempt + 1,
                    self.max_retries,
                )
                self._sleep(sleep_s)
                continue
            break

        if resp is None:
            raise ProviderNetworkError(f"{method} {url} failed: no response", provider=provider)
        if not 200 <= int(resp.status_code) < 300:
            raise ProviderNetworkError(
                f"{method} {url} failed: status={resp.status_code} body={_safe_response_text(resp)}",
                provider=provider,
            )
        return resp

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        provider: str | None = None,
        timeout_s: float | None = None,
        cache_namespace: str = "http",
        cache_ttl_s: int | None = None,
    ) -> Any:
        params = dict(params or {})
        cache_key = f"GET {url} {sorted(params.items())}"
        if cache_ttl_s is not None and self.cache is not None:
            cached = self.cache.get_json(cache_namespace, cache_key, ttl_s=cache_ttl_s)
            if cached is not None:
                self._log().info("Cache hit for %s", url)
                return cached

        resp = self.request("GET", url, params=params or None, provider=provider, timeout_s=timeout_s)
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderParseError(f"GET {url} did not return JSON: {e}", provider=provider) from e

        if cache_ttl_s is not None and self.cache is not None:
            self.cache.set_json(cache_namespace, cache_key, data)
        return data

    def post_form_json(
        self,
        url: str,
        *,
        data: dict[str, Any],
        provider: str | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        resp = self.request("POST", url, data=data, provider=provider, timeout_s=timeout_s)
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderParseError(f"POST {url} did not return JSON: {e}", provider=provider) from e

    def get_text(self, url: str, *, provider: str | None = None, timeout_s: float | None = None) -> str:
        """GET a text body; `.gz` URLs are decompressed."""
        resp = self.request("GET", url, provider=provider, timeout_s=timeout_s)
        if url.lower().split("?", 1)[0].endswith(".gz"):
            try:
                return gzip.decompress(resp.content).decode("utf-8-sig")
            except (OSError, UnicodeDecodeError) as e:
                raise ProviderParseError(f"GET {url} returned an unreadable gzip body: {e}", provider=provider) from e
        return resp.text
