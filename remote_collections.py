"""
Remote collection fetching (parallel reads with per-source state).

Purpose
-------
Pages load one or more reference lists from the personnel API before they
render (persons for a select, the three dashboard collections, the
available-computer listing). This module runs those reads concurrently and
keeps a separate loading/error/data state for each, so one failing source
never blanks out the others.

Design & invariants
-------------------
* A source is described by a `SourceSpec`; its `fetch` returns an ApiResult
  already normalized by api_client (bare list or envelope, same outcome).
* `SourceState.data` stays [] until a successful load; `error` holds the
  user-facing message otherwise. No partial success.
* Rows without an `id` are dropped (never rendered) and the drop is logged.
* SessionExpired from any worker is re-raised after every worker finished.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from api_client import ApiResult, PersonnelApiClient

logger = logging.getLogger(__name__)

# Status values (lower-cased, trimmed) that count as "approved"
APPROVED_STATUSES = {"aprobado", "approved"}


@dataclass
class SourceSpec:
    """A named read against the API."""

    key: str
    fetch: Callable[[PersonnelApiClient], ApiResult]
    require_id: bool = True


@dataclass
class SourceState:
    """Observable state of one source: loading / error / data."""

    key: str
    loading: bool = True
    error: Optional[str] = None
    data: List[Dict[str, Any]] = field(default_factory=list)
    dropped: int = 0

    @property
    def loaded(self) -> bool:
        return not self.loading and self.error is None


# =========================
# Row helpers
# =========================
def drop_missing_ids(items: Iterable[Any], source: str = "") -> Tuple[List[Dict[str, Any]], int]:
    """Return (rows with a non-null id, number of rows dropped)."""
    kept: List[Dict[str, Any]] = []
    dropped = 0
    for item in items:
        if not isinstance(item, dict) or item.get("id") is None:
            dropped += 1
            continue
        kept.append(item)
    if dropped:
        logger.warning("Dropped %d row(s) without id from source %r", dropped, source)
    return kept, dropped


def normalize_status(status: Any) -> str:
    """Lower-case and trim a status string; non-strings read as ''."""
    if not isinstance(status, str):
        return ""
    return status.strip().lower()


def is_approved(item: Dict[str, Any]) -> bool:
    return normalize_status(item.get("status")) in APPROVED_STATUSES


def approved_only(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Derived view used by person selects: only approved persons."""
    return [item for item in items if is_approved(item)]


# =========================
# Fetching
# =========================
def load_source(client: PersonnelApiClient, spec: SourceSpec) -> SourceState:
    """Run one source synchronously and return its final state."""
    state = SourceState(key=spec.key)
    result = spec.fetch(client)
    state.loading = False
    if result.is_err:
        state.error = result.error
        logger.error("Source %r failed: %s", spec.key, state.error)
        return state
    rows = result.value
    if spec.require_id:
        rows, state.dropped = drop_missing_ids(rows, spec.key)
    state.data = list(rows)
    return state


def fetch_sources(client: PersonnelApiClient, specs: List[SourceSpec]) -> Dict[str, SourceState]:
    """
    Load every source concurrently and return {key: SourceState}.

    Completion order is irrelevant; each state is independent. If a worker
    raises (e.g. SessionExpired), the first such exception is re-raised once
    all workers are done.
    """
    states: Dict[str, SourceState] = {spec.key: SourceState(key=spec.key) for spec in specs}
    if not specs:
        return states

    raised: Optional[BaseException] = None
    with ThreadPoolExecutor(max_workers=len(specs), thread_name_prefix="api-fetch") as pool:
        futures = {pool.submit(load_source, client, spec): spec.key for spec in specs}
        for future in as_completed(futures):
            key = futures[future]
            try:
                states[key] = future.result()
            except Exception as exc:
                if raised is None:
                    raised = exc
    if raised is not None:
        raise raised
    return states
