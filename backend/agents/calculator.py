"""
Node 2 — Emission Calculator — deterministic, no Claude API call.

Reads:  state["draft"]
Writes: state["report"]

Algorithm:
  1. For each draft line item, resolve the emission factor from the keyword
     table (tools/emission_factors.py), falling back to the category label
  2. carbon_emission_kg = (quantity or 0) * factor
  3. total_carbon_emission_kg = sum of all line-item emissions
"""

import time
from typing import Any

from events import emit_log
from schemas import ExtractionDraft
from state import AnalysisState
from tools.emission_factors import resolve_factor_match
from tools.report_compiler import compile_report


def calculator_node(state: AnalysisState) -> dict[str, Any]:
    """Finalize the extracted draft into an ESGReport."""
    started_at = time.time()

    logs: list[dict] = list(state.get("logs") or [])
    pipeline_trace: list[dict] = list(state.get("pipeline_trace") or [])

    ts = lambda: int(time.time() * 1000)  # noqa: E731
    analysis_id = state.get("analysis_id", "")
    document_index = state.get("document_index", 0)

    def log(msg: str) -> None:
        logs.append({"agent": "calculator", "msg": msg, "ts": ts()})
        emit_log(analysis_id, "calculator", msg, document_index)

    draft: ExtractionDraft = state.get("draft") or ExtractionDraft()
    log(f"Standardizing {len(draft.line_items)} line items against the emission factor table...")

    by_basis = {"keyword": 0, "category": 0, "unresolved": 0}
    for item in draft.line_items:
        by_basis[resolve_factor_match(item.item, item.category).basis] += 1

    log(
        f"Factors resolved: {by_basis['keyword']} by keyword, "
        f"{by_basis['category']} by category fallback, {by_basis['unresolved']} unresolved (factor 0)"
    )

    report = compile_report(draft)

    negative = sum(1 for item in report.line_items if (item.quantity or 0) < 0)
    if negative:
        log(f"Warning: {negative} line item(s) carry a negative quantity, left as extracted")

    out_of_range = sum(
        1 for item in report.line_items
        if item.quantity and item.emission_factor and item.carbon_emission_kg == 0
    )
    if out_of_range:
        log(f"Warning: {out_of_range} line item(s) exceed the float range, counted as 0 kg")

    log(f"Total: {report.total_carbon_emission_kg:,.2f} kg CO2e across {len(report.line_items)} line items")

    duration_ms = int((time.time() - started_at) * 1000)
    pipeline_trace.append({"agent": "calculator", "started_at": started_at, "ms": duration_ms})
    log(f"Calculation complete in {duration_ms}ms")

    return {
        "report": report,
        "logs": logs,
        "pipeline_trace": pipeline_trace,
    }
