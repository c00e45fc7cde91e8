"""Fixed prompt templates with strict named-placeholder substitution."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Final

_PLACEHOLDER = re.compile(r"\{([a-z][a-z0-9_]*)\}")


class PromptRenderError(ValueError):
    """Raised when a template is rendered with missing or unknown values."""


@dataclass(frozen=True)
class PromptTemplate:
    """A prompt whose ``{snake_case}`` tokens must all be supplied at render time.

    JSON examples inside a template are safe because placeholders only match
    a bare identifier wrapped in single braces.
    """

    name: str
    text: str
    placeholders: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "placeholders", frozenset(_PLACEHOLDER.findall(self.text)))

    def render(self, **values: object) -> str:
        missing = self.placeholders - values.keys()
        unknown = values.keys() - self.placeholders
        if missing or unknown:
            raise PromptRenderError(
                f"Template '{self.name}' render mismatch: "
                f"missing={sorted(missing)} unknown={sorted(unknown)}"
            )
        rendered = {key: str(value) for key, value in values.items()}
        return _PLACEHOLDER.sub(lambda match: rendered[match.group(1)], self.text)


SCREENING_PROMPT: Final = PromptTemplate(
    "screening",
    """You are an M&A screening analyst. Your task is to evaluate whether a company passes or fails a specific screening criterion.

Before returning "inconclusive" because data is missing, use every research capability available to you to look for it (financial results, industry benchmarks, comparable past deals).

## Company Information Provided
{company_context}

## Screening Criterion
{criteria_prompt}

## Your Task
1. Review the company information provided above
2. If information needed for the criterion is missing, try to find it
3. Evaluate whether the company passes or fails the criterion
4. Return your decision as JSON

## Response Format
Respond ONLY with a JSON object containing:
- "result": one of "pass", "fail", "inconclusive", or "error"
  - Use "pass" if the company clearly meets the criterion
  - Use "fail" if the company clearly does not meet the criterion
  - Use "inconclusive" ONLY if you still cannot find sufficient data
  - Use "error" only if you cannot process the request
- "remarks": A brief explanation of your decision (1-2 sentences), including what sources you used

Respond with the JSON object only, no additional text.""",
)

ENRICHMENT_PROMPT: Final = PromptTemplate(
    "enrichment",
    """You are a data enrichment agent. Your task is to find missing financial data for companies.

## Company Information
{company_info}

## Missing Fields to Find
{missing_fields}

## Field Reference
{field_reference}

## Response Format
Respond with a JSON object containing ONLY the fields you found data for. Use null for fields you couldn't find.
Format financial values in USD millions (e.g., 150.5 for $150.5M).

Example response:
{
  "revenue_2024_usd_mn": 150.5,
  "ebitda_2024_usd_mn": 25.3,
  "ev_2024": 500.0,
  "company_focus": "Enterprise software solutions"
}

Respond with the JSON object only, no additional text.""",
)

DISCOVERY_PROMPT: Final = PromptTemplate(
    "discovery",
    """You are an M&A analyst conducting market screening. Find REAL acquisition target companies that match the following investment thesis.

## Investment Thesis
{thesis}

## CRITICAL INSTRUCTIONS
1. **EXCLUDE EXISTING COMPANIES** - Do NOT include any of these companies already tracked: {exclusions}
2. **FIND NEW TARGETS** - Focus on discovering NEW companies we haven't tracked yet
3. **REAL COMPANIES ONLY** - Only return actual companies with verifiable information

## Search Strategy
- Look for "{thesis_excerpt}" companies for acquisition
- Look for private equity targets, mid-market companies, and acquisition candidates
- Focus on companies with $10M - $500M revenue range
- Prefer companies with available financial information

## Our Company Schema (for reference when estimating figures)
{schema_fields}

## Required Output Format
Return your findings as a JSON object with EXACTLY this structure (no markdown, just raw JSON):
{
  "companies": [
    {
      "company_name": "Company Name",
      "sector": "Industry/Sector",
      "description": "Brief description of what the company does",
      "match_score": 85,
      "match_reason": "Why this company matches the thesis",
      "website": "company-website.com",
      "estimated_revenue": "$50M-$100M",
      "estimated_valuation": "$200M-$400M"
    }
  ]
}

"match_score" is an integer from 0 to 100.
Find {count} companies. Return ONLY the JSON object, no other text.""",
)

MEETING_NOTES_PROMPT: Final = PromptTemplate(
    "meeting_notes",
    """You are a specialized M&A file processing assistant. Analyze the raw text extracted from a meeting document and transform it into structured JSON.

## Known Companies
{known_companies}

## Instructions
1. Write a concise summary of the meeting or document.
2. Extract the main takeaways and next steps.
3. Create searchable tags (company names, topics).
4. List which Known Companies appear in the text, plus any project codenames (e.g. "Project Utopia").
5. Extract the meeting date if present.

## Raw Text
{raw_text}

## Output Format
Respond with a JSON object only:
{
  "summary": "...",
  "key_points": ["..."],
  "action_items": ["..."],
  "tags": ["..."],
  "companies_detected": ["Acme Corp"],
  "company_notes": [{"company_name": "Acme Corp", "note": "..."}],
  "file_date": "2024-01-30"
}
Use null for "file_date" when no date is mentioned.""",
)

CHAT_SYSTEM_PROMPT: Final = PromptTemplate(
    "chat_system",
    """You are an intelligent M&A data analysis assistant that helps users explore and analyze acquisition targets.

Pipeline stages run from {first_stage} (sourcing) to {last_stage} (closing).
Financial values are expressed in USD millions; format them as $M for millions and $B for billions.

When combining internal data with external market knowledge, clearly distinguish between the two.
Be concise but thorough in your analysis.""",
)
