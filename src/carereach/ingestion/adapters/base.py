"""
Source adapter contract.

An adapter turns one external provider into canonical records for one or more
categories. `SourceAdapter.fetch` is the only entrypoint the orchestrator uses and it
never raises: every failure is folded into a `FetchResult` with a `FetchOutcome`.

Subclasses implement two hooks:
- `_fetch_rows(category, params)`: talk to the provider, return raw rows (dicts);
- `_to_record(category, row)`: build one record; raising `ValidationError` here skips
  just that row (counted in `detail["skipped"]`).
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

import requests

from carereach.catalogs.records import Record
from carereach.errors import EmptyResultError, ProviderNetworkError, ProviderParseError, ValidationError
from carereach.ingestion.http_client import ProviderHttpClient
from carereach.log import get_logger


class FetchOutcome(str, Enum):
    SUCCESS = "success"
    EMPTY_RESULT = "empty_result"
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True)
class FetchResult:
    adapter_id: str
    category: str
    outcome: FetchOutcome
    records: tuple[Record, ...] = ()
    detail: dict[str, Any] = field(default_factory=dict)
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome == FetchOutcome.SUCCESS and len(self.records) > 0

    def summary(self) -> dict[str, Any]:
        return {
            "adapter": self.adapter_id,
            "outcome": self.outcome.value,
            "records": len(self.records),
            "elapsed_s": round(self.elapsed_s, 3),
            "detail": self.detail,
        }


class SourceAdapter(ABC):
    adapter_id: str = "adapter"
    categories: frozenset[str] = frozenset()

    def __init__(
        self,
        *,
        adapter_id: str | None = None,
        client: ProviderHttpClient | None = None,
        url: str | None = None,
        timeout_s: float | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        if adapter_id:
            self.adapter_id = adapter_id
        self.client = client or ProviderHttpClient()
        self.url = url
        self.timeout_s = timeout_s
        self.options = dict(options or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(adapter_id={self.adapter_id!r}, url={self.url!r})"

    @abstractmethod
    def _fetch_rows(self, category: str, params: Mapping[str, Any]) -> Iterable[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def _to_record(self, category: str, row: dict[str, Any]) -> Record:
        raise NotImplementedError

    def fetch(self, category: str, params: Mapping[str, Any] | None = None) -> FetchResult:
        log = get_logger()
        started = time.monotonic()
        detail: dict[str, Any] = {"url": self.url}

        def done(outcome: FetchOutcome, records: tuple[Record, ...] = ()) -> FetchResult:
            elapsed = time.monotonic() - started
            log.info(
                "Adapter %s for %s: %s records=%s elapsed=%.2fs",
                self.adapter_id, category, outcome.value, len(records), elapsed,
            )
            return FetchResult(
                adapter_id=self.adapter_id,
                category=category,
                outcome=outcome,
                records=records,
                detail=detail,
                elapsed_s=elapsed,
            )

        if self.categories and category not in self.categories:
            detail["error"] = f"adapter does not serve category {category!r}"
            return done(FetchOutcome.PARSE_ERROR)

        try:
            rows = list(self._fetch_rows(category, params or {}))
            records: list[Record] = []
            skipped = 0
            for row in rows:
                try:
                    records.append(self._to_record(category, row))
                except ValidationError as e:
                    skipped += 1
                    log.debug("Adapter %s skipped a row: %s", self.adapter_id, e)
            detail["rows"] = len(rows)
            detail["skipped"] = skipped
            if not records:
                raise EmptyResultError(f"{self.adapter_id} returned no usable records")
        except EmptyResultError as e:
            detail["error"] = str(e)
            return done(FetchOutcome.EMPTY_RESULT)
        except (ProviderNetworkError, requests.RequestException, TimeoutError) as e:
            detail["error"] = str(e)
            log.warning("Adapter %s network failure: %s", self.adapter_id, e)
            return done(FetchOutcome.NETWORK_ERROR)
        except (ProviderParseError, ValueError, KeyError, TypeError) as e:
            detail["error"] = f"{type(e).__name__}: {e}"
            log.warning("Adapter %s parse failure: %s", self.adapter_id, detail["error"])
            return done(FetchOutcome.PARSE_ERROR)
        except Exception as e:
            # Anything unexpected from a provider payload still only fails this attempt.
            detail["error"] = f"{type(e).__name__}: {e}"
            log.exception("Adapter %s failed unexpectedly", self.adapter_id)
            return done(FetchOutcome.PARSE_ERROR)

        return done(FetchOutcome.SUCCESS, tuple(records))
