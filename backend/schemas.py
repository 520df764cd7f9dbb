"""
Pydantic v2 models for the Green Invoice emission engine.

Two families live here:
  - Draft models (LineItemDraft, ExtractionDraft) validate the loosely typed
    record returned by the extraction provider. Every field is optional and
    nulls collapse to neutral defaults, so the calculator never sees None
    where it expects text.
  - Finalized models (LineItem, ESGReport, ComparisonResult, ...) are frozen
    snapshots handed to the presentation layer. Field names mirror the
    frontend contract 1:1.
"""

from __future__ import annotations

import math
import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enum-like Literals
# ---------------------------------------------------------------------------

ConfidenceLevel = Literal["High", "Medium", "Low"]
FactorBasis = Literal["keyword", "category", "unresolved"]
DocumentStatus = Literal["completed", "failed"]
AgentName = Literal["extractor", "calculator", "comparator", "system"]

_CONFIDENCE_LEVELS: dict[str, ConfidenceLevel] = {
    "high": "High",
    "medium": "Medium",
    "low": "Low",
}

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def canonical_confidence(value: Any) -> ConfidenceLevel:
    """Map a free-text confidence label onto High / Medium / Low (unknown → Low)."""
    if isinstance(value, str):
        return _CONFIDENCE_LEVELS.get(value.strip().lower(), "Low")
    return "Low"


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _coerce_quantity(value: Any) -> Optional[float]:
    """Numbers pass through; numeric strings are parsed; anything else is None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str) and _NUMBER_RE.match(value.strip().replace(",", "")):
        number = float(value.strip().replace(",", ""))
    else:
        return None
    return number if math.isfinite(number) else None


# ---------------------------------------------------------------------------
# 1. Extraction drafts (untrusted provider output)
# ---------------------------------------------------------------------------

class LineItemDraft(BaseModel):
    """One invoice row as returned by the extraction provider."""
    item: str = ""
    quantity: Optional[float] = None
    unit: str = ""
    category: str = ""          # "Energy" | "OpEx" | "Raw Material" | free text
    evidence_text: str = ""     # verbatim invoice line, never altered

    @field_validator("item", "unit", "category", "evidence_text", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> str:
        return _coerce_text(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> Optional[float]:
        return _coerce_quantity(value)


class ExtractionDraft(BaseModel):
    """Document-level record returned by the extraction provider."""
    company_name: str = ""
    invoice_date: str = ""
    line_items: list[LineItemDraft] = []
    confidence_score: ConfidenceLevel = "Low"

    @field_validator("company_name", "invoice_date", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> str:
        return _coerce_text(value)

    @field_validator("line_items", mode="before")
    @classmethod
    def _normalise_line_items(cls, value: Any) -> Any:
        # Non-list values fall through and fail list validation.
        if value is None:
            return []
        if isinstance(value, list):
            return [entry if isinstance(entry, (dict, LineItemDraft)) else {} for entry in value]
        return value

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _canonical_confidence(cls, value: Any) -> ConfidenceLevel:
        return canonical_confidence(value)


# ---------------------------------------------------------------------------
# 2. Factor resolution
# ---------------------------------------------------------------------------

class FactorMatch(BaseModel):
    """How an emission factor was resolved for one line item."""
    model_config = ConfigDict(frozen=True)

    factor: float
    basis: FactorBasis
    keyword: Optional[str] = None


# ---------------------------------------------------------------------------
# 3. Finalized report
# ---------------------------------------------------------------------------

class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: str
    quantity: Optional[float] = None
    unit: str
    category: str
    emission_factor: Optional[float] = None       # kg CO2 per unit
    carbon_emission_kg: Optional[float] = None
    evidence_text: str


class ESGReport(BaseModel):
    """Finalized emission report for one invoice. Immutable once compiled.

    The total must equal the sum of the line-item emissions (null counts as 0).
    """
    model_config = ConfigDict(frozen=True)

    company_name: str
    invoice_date: str
    line_items: tuple[LineItem, ...] = ()
    total_carbon_emission_kg: float
    confidence_score: ConfidenceLevel

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _canonical_confidence(cls, value: Any) -> ConfidenceLevel:
        return canonical_confidence(value)

    @model_validator(mode="after")
    def _total_matches_line_items(self) -> "ESGReport":
        line_total = sum((item.carbon_emission_kg or 0) for item in self.line_items)
        if not math.isfinite(self.total_carbon_emission_kg):
            raise ValueError("total_carbon_emission_kg must be finite")
        if not math.isclose(self.total_carbon_emission_kg, line_total, rel_tol=1e-9, abs_tol=1e-9):
            raise ValueError(
                f"total_carbon_emission_kg {self.total_carbon_emission_kg} does not match "
                f"the line-item sum {line_total}"
            )
        return self


# ---------------------------------------------------------------------------
# 4. Analytics
# ---------------------------------------------------------------------------

class CategoryEmission(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    emission_kg: float


class CategoryComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    baseline_kg: float
    comparison_kg: float


class ReportSummary(BaseModel):
    """Dashboard figures derived from a single report."""
    model_config = ConfigDict(frozen=True)

    total_carbon_emission_kg: float
    line_item_count: int
    category_breakdown: tuple[CategoryEmission, ...] = ()
    top_contributor: Optional[LineItem] = None
    dominant_category: Optional[CategoryEmission] = None


class ComparisonResult(BaseModel):
    """Baseline (first document) vs comparison (second document)."""
    model_config = ConfigDict(frozen=True)

    baseline: ESGReport
    comparison: ESGReport
    baseline_total_kg: float
    comparison_total_kg: float
    delta_kg: float             # comparison - baseline
    percent_change: float       # 0 when the baseline total is 0
    category_matrix: tuple[CategoryComparison, ...] = ()
    baseline_summary: ReportSummary
    comparison_summary: ReportSummary


class CompareRequest(BaseModel):
    baseline: ESGReport
    comparison: ESGReport


# ---------------------------------------------------------------------------
# 5. Pipeline Trace
# ---------------------------------------------------------------------------

class AgentTiming(BaseModel):
    agent: AgentName
    document_index: Optional[int] = None
    duration_ms: int
    status: Literal["completed", "failed", "skipped"]


class PipelineTrace(BaseModel):
    total_duration_ms: int
    agents: list[AgentTiming]


# ---------------------------------------------------------------------------
# 6. Analysis Log (internal — streamed via SSE, not in final JSON)
# ---------------------------------------------------------------------------

class AnalysisLog(BaseModel):
    timestamp: int  # epoch ms
    agent: AgentName
    message: str


# ---------------------------------------------------------------------------
# 7. Top-Level Response
# ---------------------------------------------------------------------------

class DocumentResult(BaseModel):
    index: int
    file_name: str
    mime_type: str
    status: DocumentStatus
    report: Optional[ESGReport] = None
    summary: Optional[ReportSummary] = None
    error: Optional[str] = None


class AnalysisResult(BaseModel):
    analysis_id: str
    generated_at: str  # ISO 8601
    schema_version: str = "1.0"
    documents: list[DocumentResult]
    comparison: Optional[ComparisonResult] = None
    pipeline: PipelineTrace
