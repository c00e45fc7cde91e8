"""Decide which discovered or enriched data is actually persisted.

Duplicate detection is a loose, case-insensitive substring check: a
discovered name is dropped when it appears inside any existing name. It is
not fuzzy matching and callers rely on exactly that containment behaviour.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from app.models.discovery import DiscoveredCompany
from app.services.screening.errors import PipelineError
from app.services.screening.parsing import coerce_finite_number, coerce_score
from app.services.screening.schema import ENRICHABLE_FIELDS, FIELDS_BY_NAME, is_missing

logger = logging.getLogger(__name__)

_T = TypeVar("_T")
_R = TypeVar("_R")

_CANDIDATE_TEXT_FIELDS = (
    "sector",
    "description",
    "match_reason",
    "website",
    "estimated_revenue",
    "estimated_valuation",
)


def is_duplicate_name(name: str, existing_names: Iterable[str]) -> bool:
    needle = name.strip().lower()
    if not needle:
        return True
    return any(needle in existing.lower() for existing in existing_names if existing)


def filter_new_candidates(
    candidates: Sequence[DiscoveredCompany], existing_names: Iterable[str]
) -> list[DiscoveredCompany]:
    """Drop candidates already tracked; accepted names also block later repeats in the batch."""
    corpus = [name for name in existing_names if name]
    accepted: list[DiscoveredCompany] = []
    for candidate in candidates:
        if is_duplicate_name(candidate.company_name, corpus):
            logger.info("discovery.duplicate_skipped", extra={"company_name": candidate.company_name})
            continue
        accepted.append(candidate)
        corpus.append(candidate.company_name)
    return accepted


def candidates_from_payload(payload: Mapping[str, Any]) -> list[DiscoveredCompany]:
    """Validate the agent's ``companies`` array entry by entry.

    Entries without a company name are dropped; an invalid ``match_score`` is
    rejected for that field only (stored as null, never clamped).
    """
    entries = payload.get("companies")
    if not isinstance(entries, list):
        return []
    candidates: list[DiscoveredCompany] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        name = entry.get("company_name")
        if not isinstance(name, str) or not name.strip():
            logger.warning("discovery.candidate_missing_name")
            continue
        score = coerce_score(entry.get("match_score"))
        if score is None and entry.get("match_score") is not None:
            logger.warning(
                "discovery.invalid_match_score",
                extra={"company_name": name, "match_score": repr(entry.get("match_score"))},
            )
        values: dict[str, Any] = {"company_name": name.strip(), "match_score": score}
        for key in _CANDIDATE_TEXT_FIELDS:
            raw = entry.get(key)
            if raw is None:
                continue
            values[key] = raw if isinstance(raw, str) else str(raw)
        candidates.append(DiscoveredCompany(**values))
    return candidates


def build_enrichment_update(
    existing: Mapping[str, Any], found: Mapping[str, Any]
) -> dict[str, Any]:
    """Fields from ``found`` that may be written onto ``existing``.

    A field is kept only when it is whitelisted, the incoming value is usable
    for its type, and the existing record has no value for it.
    """
    update: dict[str, Any] = {}
    for key, value in found.items():
        if key not in ENRICHABLE_FIELDS or value is None:
            continue
        if not is_missing(existing.get(key)):
            continue
        spec = FIELDS_BY_NAME[key]
        if spec.kind == "number":
            number = coerce_finite_number(value)
            if number is None:
                logger.warning("enrichment.invalid_number", extra={"field": key})
                continue
            update[key] = number
        elif isinstance(value, str) and value.strip():
            update[key] = value.strip()
    return update


@dataclass
class BatchOutcome(Generic[_R]):
    """Per-record results of a batch write."""

    succeeded: list[_R] = field(default_factory=list)
    failed: list[tuple[Any, str]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


def persist_each(
    items: Sequence[_T],
    write: Callable[[_T], _R],
    *,
    label: Callable[[_T], Any] = lambda item: item,
) -> BatchOutcome[_R]:
    """Write ``items`` one at a time; a failing record never stops the rest."""
    outcome: BatchOutcome[_R] = BatchOutcome()
    for item in items:
        try:
            outcome.succeeded.append(write(item))
        except PipelineError as exc:
            logger.warning(
                "reconciler.record_failed",
                extra={"item": str(label(item)), "code": exc.code},
            )
            outcome.failed.append((label(item), str(exc)))
    return outcome
