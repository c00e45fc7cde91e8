"""Render company records as prompt context."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from app.services.screening.formatting import format_usd_mn
from app.services.screening.schema import FINANCIAL_FIELDS, PROFILE_FIELDS, is_missing

NO_FINANCIALS_MARKER = "no financial data available"


def build_company_context(company: Mapping[str, Any]) -> str:
    """Return a deterministic, human-readable profile listing only present fields."""
    name = company.get("name")
    lines = [f"**Company Name:** {name if not is_missing(name) else 'Unknown'}"]

    for spec in PROFILE_FIELDS:
        value = company.get(spec.name)
        if not is_missing(value):
            lines.append(f"**{spec.label}:** {value}")

    financials = [
        f"{spec.label}: {format_usd_mn(company[spec.name])}"
        for spec in FINANCIAL_FIELDS
        if company.get(spec.name) is not None
    ]
    if financials:
        lines.append("**Financials:**")
        lines.append(" | ".join(financials))
    else:
        lines.append(f"**Financials:** {NO_FINANCIALS_MARKER}")

    return "\n".join(lines)


def build_company_summary(company: Mapping[str, Any]) -> str:
    """Short profile used by the enrichment prompt (no financials)."""
    lines = [f"Name: {company.get('name') or 'Unknown'}"]
    for spec in PROFILE_FIELDS:
        value = company.get(spec.name)
        if not is_missing(value):
            lines.append(f"{spec.label}: {value}")
    return "\n".join(lines)
