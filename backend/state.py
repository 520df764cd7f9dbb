"""
AnalysisState TypedDict — shared memory for the per-document LangGraph run.

One graph run handles one uploaded document:
  extractor → calculator

Input keys (analysis_id, document_index, file_name, mime_type, document_b64)
are set once by FastAPI and never modified. Comparing two documents happens
outside the graph, after every per-document run has finished.
"""

from __future__ import annotations

from typing import TypedDict

from schemas import ESGReport, ExtractionDraft


class AnalysisState(TypedDict, total=False):
    # ── INIT — set by FastAPI before the graph runs ──────────────────────────
    analysis_id: str            # UUID shared by all documents of one upload
    document_index: int         # 0 = baseline, 1 = comparison
    file_name: str
    mime_type: str              # "application/pdf" | "image/png" | ...
    document_b64: str           # base64-encoded file content
    logs: list[dict]            # Accumulates { agent, msg, ts } entries
    pipeline_trace: list[dict]  # Accumulates { agent, started_at, ms }

    # ── NODE 1 OUTPUT — Extractor writes ─────────────────────────────────────
    draft: ExtractionDraft

    # ── NODE 2 OUTPUT — Calculator writes ────────────────────────────────────
    report: ESGReport
