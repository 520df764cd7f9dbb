"""
FastAPI app — Green Invoice Scope-3 Emission Engine.

Endpoints:
  POST  /analysis/run                               Upload 1–2 invoices (PDF / image), start analysis
  GET   /analysis/{analysis_id}/stream              SSE stream of log lines + final result
  GET   /analysis/{analysis_id}                     Return cached result (for reconnects)
  GET   /analysis/{analysis_id}/documents/{i}/export  Raw JSON of one finalized report
  POST  /reports/compile                            Finalize a draft record (no Claude call)
  POST  /reports/compare                            Compare two finalized reports
  POST  /reports/summary                            Dashboard figures for one report
  GET   /health                                     Liveness probe
"""

import asyncio
import base64
import json
import logging
import mimetypes
import os
import threading
import time
import traceback
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from dotenv import load_dotenv

load_dotenv()  # Load ANTHROPIC_API_KEY (and other vars) from .env

from fastapi import Body, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from agents.extractor import SUPPORTED_MIME_TYPES
from events import (
    emit_document_complete,
    emit_document_error,
    emit_log,
    emit_node_complete,
    register,
    unregister,
)
from graph import PIPELINE_NODES, graph
from schemas import (
    AgentTiming,
    AnalysisResult,
    CompareRequest,
    ComparisonResult,
    DocumentResult,
    ESGReport,
    PipelineTrace,
    ReportSummary,
)
from state import AnalysisState
from tools.comparison import compare_reports, summarize_report
from tools.report_compiler import DraftValidationError, compile_report

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

logger = logging.getLogger("analysis")
logging.basicConfig(level=logging.INFO)

MAX_DOCUMENTS = 2

_DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://localhost:5173",
]


def get_allowed_origins() -> list[str]:
    """Read CORS origins from env var, falling back to the local dev ports."""
    raw = os.environ.get("GREEN_INVOICE_CORS_ORIGINS", "")
    if raw.strip():
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return list(_DEFAULT_CORS_ORIGINS)


app = FastAPI(title="Green Invoice Emission Engine", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# In-memory job store (v1)
# ---------------------------------------------------------------------------


class _AnalysisJob:
    """Tracks a running or completed analysis."""

    __slots__ = ("events", "complete", "result", "analysis")

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self.complete = threading.Event()
        self.result: dict[str, Any] | None = None
        self.analysis: AnalysisResult | None = None


_jobs: dict[str, _AnalysisJob] = {}


# ---------------------------------------------------------------------------
# Background graph runner
# ---------------------------------------------------------------------------


def _resolve_mime_type(upload: UploadFile) -> str:
    """Prefer the declared content type, otherwise guess from the file name."""
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type and content_type != "application/octet-stream":
        return content_type
    guessed, _ = mimetypes.guess_type(upload.filename or "")
    return guessed or content_type


def _completed_timings(analysis_id: str, index: int, result: dict[str, Any]) -> list[AgentTiming]:
    timings: list[AgentTiming] = []
    for trace_entry in result.get("pipeline_trace") or []:
        emit_node_complete(analysis_id, trace_entry["agent"], trace_entry["ms"], index)
        timings.append(AgentTiming(
            agent=trace_entry["agent"],
            document_index=index,
            duration_ms=trace_entry["ms"],
            status="completed",
        ))
    return timings


def _run_document(analysis_id: str, state: AnalysisState) -> tuple[DocumentResult, list[AgentTiming]]:
    """Run the extractor → calculator graph for one document.

    Failures are contained here: the document is marked failed and the
    sibling document keeps running. The failed timing names the first node
    that did not complete.
    """
    index = state["document_index"]
    started_at = time.time()
    result: dict[str, Any] = dict(state)
    completed: list[str] = []

    try:
        for update in graph.stream(state, stream_mode="updates"):
            for node, values in update.items():
                completed.append(node)
                result.update(values or {})
    except Exception as exc:
        failed_agent = next((node for node in PIPELINE_NODES if node not in completed), "system")
        logger.error(
            "[%s] Document %d (%s) FAILED in %s: %s",
            analysis_id[:8], index, state.get("file_name"), failed_agent, exc,
        )
        logger.error("[%s] Traceback:\n%s", analysis_id[:8], traceback.format_exc())
        emit_document_error(analysis_id, index, str(exc))
        timings = _completed_timings(analysis_id, index, result)
        timings.append(AgentTiming(
            agent=failed_agent,
            document_index=index,
            duration_ms=max(
                int((time.time() - started_at) * 1000) - sum(t.duration_ms for t in timings), 0
            ),
            status="failed",
        ))
        document = DocumentResult(
            index=index,
            file_name=state.get("file_name", ""),
            mime_type=state.get("mime_type", ""),
            status="failed",
            error=str(exc),
        )
        return document, timings

    timings = _completed_timings(analysis_id, index, result)

    report: ESGReport = result["report"]
    emit_document_complete(analysis_id, index, report.model_dump(mode="json"))

    document = DocumentResult(
        index=index,
        file_name=state.get("file_name", ""),
        mime_type=state.get("mime_type", ""),
        status="completed",
        report=report,
        summary=summarize_report(report),
    )
    return document, timings


def _run_analysis(analysis_id: str, states: list[AnalysisState], job: _AnalysisJob) -> None:
    """Fan documents out to the graph, wait for all of them, then compare.

    The comparison only runs when exactly two documents produced a report.
    """
    register(analysis_id, lambda evt: job.events.append(evt))
    started_at = time.time()

    try:
        logger.info("[%s] Analysing %d document(s)...", analysis_id[:8], len(states))

        with ThreadPoolExecutor(max_workers=len(states)) as pool:
            futures = [pool.submit(_run_document, analysis_id, state) for state in states]
            outcomes = [future.result() for future in futures]

        documents = [document for document, _ in outcomes]
        timings = [timing for _, document_timings in outcomes for timing in document_timings]

        comparison: ComparisonResult | None = None
        reports = [d.report for d in documents if d.status == "completed" and d.report is not None]
        if len(documents) == MAX_DOCUMENTS:
            if len(reports) == MAX_DOCUMENTS:
                compare_started = time.time()
                comparison = compare_reports(reports[0], reports[1])
                emit_log(
                    analysis_id,
                    "comparator",
                    f"Comparison document shows {comparison.delta_kg:+,.2f} kg CO2e "
                    f"({comparison.percent_change:+.1f}%) against baseline",
                )
                timings.append(AgentTiming(
                    agent="comparator",
                    duration_ms=int((time.time() - compare_started) * 1000),
                    status="completed",
                ))
            else:
                emit_log(analysis_id, "comparator", "Comparison skipped: not every document was analysed")
                timings.append(AgentTiming(agent="comparator", duration_ms=0, status="skipped"))

        analysis = AnalysisResult(
            analysis_id=analysis_id,
            generated_at=datetime.now(timezone.utc).isoformat(),
            documents=documents,
            comparison=comparison,
            pipeline=PipelineTrace(
                total_duration_ms=int((time.time() - started_at) * 1000),
                agents=timings,
            ),
        )
        logger.info(
            "[%s] Analysis completed: %d/%d document(s) succeeded",
            analysis_id[:8], len(reports), len(documents),
        )

        job.analysis = analysis
        job.result = analysis.model_dump(mode="json")
        job.events.append({"type": "complete", "result": job.result})

    except Exception as exc:
        logger.error("[%s] Analysis FAILED: %s", analysis_id[:8], exc)
        logger.error("[%s] Traceback:\n%s", analysis_id[:8], traceback.format_exc())
        job.events.append({"type": "error", "message": str(exc)})
    finally:
        unregister(analysis_id)
        job.complete.set()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/analysis/run")
async def analysis_run(files: list[UploadFile] = File(...)):
    """Accept one or two invoice files and start the analysis in the background."""
    logger.info("POST /analysis/run — %d file(s)", len(files))

    if not files:
        raise HTTPException(400, "At least one invoice file is required.")
    if len(files) > MAX_DOCUMENTS:
        raise HTTPException(400, f"At most {MAX_DOCUMENTS} invoice files can be analysed together.")

    analysis_id = str(uuid.uuid4())
    states: list[AnalysisState] = []

    for index, upload in enumerate(files):
        mime_type = _resolve_mime_type(upload)
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise HTTPException(
                400,
                f"Unsupported file type for '{upload.filename}': {mime_type or 'unknown'}. "
                "Upload a PDF or an image (PNG, JPEG, WEBP, GIF).",
            )

        raw_bytes = await upload.read()
        if not raw_bytes:
            raise HTTPException(400, f"Uploaded file '{upload.filename}' is empty.")
        logger.info("[%s] Uploaded file: %s (%s, %d bytes)", analysis_id[:8], upload.filename, mime_type, len(raw_bytes))

        states.append({
            "analysis_id": analysis_id,
            "document_index": index,
            "file_name": upload.filename or f"document-{index + 1}",
            "mime_type": mime_type,
            "document_b64": base64.b64encode(raw_bytes).decode("ascii"),
            "logs": [],
            "pipeline_trace": [],
        })

    # Create job + launch background thread
    job = _AnalysisJob()
    _jobs[analysis_id] = job

    thread = threading.Thread(
        target=_run_analysis,
        args=(analysis_id, states, job),
        daemon=True,
    )
    thread.start()

    return {"analysis_id": analysis_id}


@app.get("/analysis/{analysis_id}/stream")
async def analysis_stream(analysis_id: str):
    """SSE stream — emits log lines, node completions, per-document results and the final result JSON."""
    if analysis_id not in _jobs:
        raise HTTPException(404, f"Analysis {analysis_id} not found")

    job = _jobs[analysis_id]

    async def _event_generator():
        sent = 0
        heartbeat_interval = 5.0  # seconds between keepalive comments
        last_heartbeat = asyncio.get_event_loop().time()

        while True:
            # Emit any new events
            while sent < len(job.events):
                event = job.events[sent]
                sent += 1
                yield f"data: {json.dumps(event)}\n\n"
                last_heartbeat = asyncio.get_event_loop().time()

            # If every document has finished, drain remaining events and exit
            if job.complete.is_set():
                while sent < len(job.events):
                    event = job.events[sent]
                    sent += 1
                    yield f"data: {json.dumps(event)}\n\n"
                break

            # Send SSE comment as keepalive to prevent connection timeout
            now = asyncio.get_event_loop().time()
            if now - last_heartbeat >= heartbeat_interval:
                yield ": keepalive\n\n"
                last_heartbeat = now

            await asyncio.sleep(0.05)

    return StreamingResponse(
        _event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/analysis/{analysis_id}")
async def get_analysis(analysis_id: str):
    """Return cached result (for reconnects after stream ends)."""
    if analysis_id not in _jobs:
        raise HTTPException(404, f"Analysis {analysis_id} not found")

    job = _jobs[analysis_id]
    if job.result is None:
        return JSONResponse({"status": "running", "analysis_id": analysis_id}, status_code=202)

    return job.result


@app.get("/analysis/{analysis_id}/documents/{document_index}/export")
async def export_report(analysis_id: str, document_index: int):
    """Raw JSON of one finalized report, for audit export."""
    if analysis_id not in _jobs:
        raise HTTPException(404, f"Analysis {analysis_id} not found")

    job = _jobs[analysis_id]
    if job.analysis is None:
        return JSONResponse({"status": "running", "analysis_id": analysis_id}, status_code=202)

    documents = {d.index: d for d in job.analysis.documents}
    document = documents.get(document_index)
    if document is None or document.report is None:
        raise HTTPException(404, f"No finalized report for document {document_index}")

    return Response(
        content=document.report.model_dump_json(indent=2),
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="report-{analysis_id[:8]}-{document_index}.json"',
        },
    )


# ---------------------------------------------------------------------------
# Deterministic report endpoints (no Claude call)
# ---------------------------------------------------------------------------


@app.post("/reports/compile", response_model=ESGReport)
async def reports_compile(draft: Any = Body(...)):
    """Finalize an extraction draft record into an ESGReport."""
    try:
        return compile_report(draft)
    except DraftValidationError as exc:
        raise HTTPException(400, str(exc))


@app.post("/reports/compare", response_model=ComparisonResult)
async def reports_compare(request: CompareRequest):
    """Compare a baseline report against a comparison report."""
    return compare_reports(request.baseline, request.comparison)


@app.post("/reports/summary", response_model=ReportSummary)
async def reports_summary(report: ESGReport):
    """Top contributor, dominant category and category breakdown of one report."""
    return summarize_report(report)
