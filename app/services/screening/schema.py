"""Static description of the ``companies`` entity used by prompts and the reconciler."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, Literal

FieldKind = Literal["number", "text"]


@dataclass(frozen=True)
class FieldSpec:
    """One column of the companies table as seen by the agent."""

    name: str
    kind: FieldKind
    label: str
    financial: bool = False
    enrichable: bool = False
    description: str = ""


COMPANY_FIELDS: Final[tuple[FieldSpec, ...]] = (
    FieldSpec("name", "text", "Company Name", description="Legal or trading name"),
    FieldSpec("segment", "text", "Segment", enrichable=True, description="Industry segment"),
    FieldSpec("geography", "text", "Geography", enrichable=True, description="HQ country or region"),
    FieldSpec(
        "company_focus", "text", "Focus", enrichable=True, description="Core products or services"
    ),
    FieldSpec(
        "ownership", "text", "Ownership", enrichable=True, description="Private, PE-backed, public..."
    ),
    FieldSpec("website", "text", "Website", description="Company website"),
    FieldSpec("revenue_2022_usd_mn", "number", "Revenue 2022", financial=True, enrichable=True),
    FieldSpec("revenue_2023_usd_mn", "number", "Revenue 2023", financial=True, enrichable=True),
    FieldSpec("revenue_2024_usd_mn", "number", "Revenue 2024", financial=True, enrichable=True),
    FieldSpec("ebitda_2022_usd_mn", "number", "EBITDA 2022", financial=True, enrichable=True),
    FieldSpec("ebitda_2023_usd_mn", "number", "EBITDA 2023", financial=True, enrichable=True),
    FieldSpec("ebitda_2024_usd_mn", "number", "EBITDA 2024", financial=True, enrichable=True),
    FieldSpec("ev_2024", "number", "EV 2024", financial=True, enrichable=True),
)

FIELDS_BY_NAME: Final[dict[str, FieldSpec]] = {spec.name: spec for spec in COMPANY_FIELDS}

PROFILE_FIELDS: Final[tuple[FieldSpec, ...]] = tuple(
    spec for spec in COMPANY_FIELDS if not spec.financial and spec.name != "name"
)
FINANCIAL_FIELDS: Final[tuple[FieldSpec, ...]] = tuple(
    spec for spec in COMPANY_FIELDS if spec.financial
)
ENRICHABLE_FIELDS: Final[frozenset[str]] = frozenset(
    spec.name for spec in COMPANY_FIELDS if spec.enrichable
)


def is_missing(value: Any) -> bool:
    """Null and blank strings both count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def missing_enrichable_fields(company: Mapping[str, Any]) -> list[str]:
    """Enrichable field names that are absent on ``company``, in schema order."""
    return [
        spec.name
        for spec in COMPANY_FIELDS
        if spec.enrichable and is_missing(company.get(spec.name))
    ]


def describe_fields(names: list[str] | None = None) -> str:
    """Render a bullet list of fields for inclusion in a prompt."""
    selected = [FIELDS_BY_NAME[name] for name in names] if names is not None else COMPANY_FIELDS
    lines = []
    for spec in selected:
        unit = " (USD millions)" if spec.financial else ""
        detail = f" - {spec.description}" if spec.description else ""
        lines.append(f"- {spec.name}: {spec.kind}{unit}{detail}")
    return "\n".join(lines)
