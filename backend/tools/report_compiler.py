"""
Report compiler — turns an extraction draft into a finalized ESGReport.

Provides:
  - parse_draft(raw)          — validate the provider record (hard failure on bad shape)
  - compile_line_item(draft)  — resolve the factor and compute carbon_emission_kg
  - compile_report(draft)     — finalize every line item and sum the report total

No rounding happens here; display rounding belongs to the frontend.
"""

from __future__ import annotations

import json
import math
from typing import Any, Mapping, Union

from pydantic import ValidationError

from schemas import ESGReport, ExtractionDraft, LineItem, LineItemDraft
from tools.emission_factors import resolve_emission_factor


class DraftValidationError(ValueError):
    """Raised when the extraction record is not shaped like a draft report."""


def parse_draft(raw: Any) -> ExtractionDraft:
    """Validate a provider record (mapping or JSON text) into an ExtractionDraft.

    Missing or null fields get neutral defaults. Only structural problems
    (record is not an object, line_items is not a list, invalid JSON) raise.
    """
    if isinstance(raw, ExtractionDraft):
        return raw

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DraftValidationError(f"Extraction record is not valid JSON: {exc}") from exc

    if not isinstance(raw, Mapping):
        raise DraftValidationError(
            f"Extraction record must be a JSON object, got {type(raw).__name__}"
        )

    try:
        return ExtractionDraft.model_validate(dict(raw))
    except ValidationError as exc:
        raise DraftValidationError(f"Extraction record has an invalid shape: {exc}") from exc


def compile_line_item(draft_item: LineItemDraft) -> LineItem:
    """Attach the resolved emission factor and computed emission to one draft row.

    A product too large to represent as a finite float contributes 0.
    """
    factor = resolve_emission_factor(draft_item.item, draft_item.category)
    emission = (draft_item.quantity or 0) * factor
    if not math.isfinite(emission):
        emission = 0.0

    return LineItem(
        item=draft_item.item,
        quantity=draft_item.quantity,
        unit=draft_item.unit,
        category=draft_item.category,
        emission_factor=factor,
        carbon_emission_kg=emission,
        evidence_text=draft_item.evidence_text,
    )


def compile_report(draft: Union[ExtractionDraft, Mapping[str, Any], str, bytes]) -> ESGReport:
    """Finalize a draft record into an immutable ESGReport.

    Line-item order is preserved. Negative quantities are not clamped. An
    item that would push the running total past the float range contributes 0.
    """
    draft = parse_draft(draft)

    line_items: list[LineItem] = []
    total = 0.0
    for draft_item in draft.line_items:
        item = compile_line_item(draft_item)
        if not math.isfinite(total + (item.carbon_emission_kg or 0)):
            item = item.model_copy(update={"carbon_emission_kg": 0.0})
        total += item.carbon_emission_kg or 0
        line_items.append(item)

    return ESGReport(
        company_name=draft.company_name,
        invoice_date=draft.invoice_date,
        line_items=tuple(line_items),
        total_carbon_emission_kg=total,
        confidence_score=draft.confidence_score,
    )
