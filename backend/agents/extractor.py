"""
Node 1 — Invoice Reader (Extractor) — Claude API call.

Sends one invoice (PDF as a document block, images as an image block) to
Claude and validates the JSON reply into an ExtractionDraft.

A document that cannot be read, or whose reply is not shaped like a draft,
raises ExtractionError; main.py fails that document only.
"""

import json
import os
import re
import time
from typing import Any

import anthropic

from events import emit_log
from schemas import ExtractionDraft
from state import AnalysisState
from tools.prompts import SYSTEM_PROMPT_EXTRACTOR, USER_PROMPT_EXTRACTOR
from tools.report_compiler import DraftValidationError, parse_draft

DEFAULT_MODEL = "claude-sonnet-4-6"
MAX_TOKENS = 8192

PDF_MIME_TYPE = "application/pdf"
IMAGE_MIME_TYPES = ("image/png", "image/jpeg", "image/webp", "image/gif")
SUPPORTED_MIME_TYPES = (PDF_MIME_TYPE,) + IMAGE_MIME_TYPES


class ExtractionError(RuntimeError):
    """Raised when a document cannot be turned into a draft record."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_model() -> str:
    """Read the extraction model from env, falling back to the default."""
    return os.environ.get("GREEN_INVOICE_MODEL", "").strip() or DEFAULT_MODEL


def _parse_llm_json(raw_text: str) -> Any:
    """Parse JSON from Claude's response, handling markdown fences and whitespace.

    Raises json.JSONDecodeError if no valid JSON can be extracted.
    """
    text = raw_text.strip()

    # Strip markdown code fences: ```json ... ``` or ``` ... ```
    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", text, re.DOTALL)
    if fence_match:
        text = fence_match.group(1).strip()

    return json.loads(text)


def _document_block(mime_type: str, data_b64: str) -> dict[str, Any]:
    """Build the Claude content block carrying the uploaded file."""
    if mime_type == PDF_MIME_TYPE:
        block_type = "document"
    elif mime_type in IMAGE_MIME_TYPES:
        block_type = "image"
    else:
        raise ExtractionError(f"Unsupported document type: {mime_type or 'unknown'}")

    return {
        "type": block_type,
        "source": {"type": "base64", "media_type": mime_type, "data": data_b64},
    }


def extract_draft(mime_type: str, data_b64: str, client: anthropic.Anthropic | None = None) -> ExtractionDraft:
    """Ask Claude for the draft record of one document."""
    client = client or anthropic.Anthropic()

    response = client.messages.create(
        model=get_model(),
        max_tokens=MAX_TOKENS,
        temperature=0,
        system=SYSTEM_PROMPT_EXTRACTOR,
        messages=[
            {
                "role": "user",
                "content": [
                    _document_block(mime_type, data_b64),
                    {"type": "text", "text": USER_PROMPT_EXTRACTOR},
                ],
            }
        ],
    )

    if not response.content:
        raise ExtractionError("No response content from Claude")

    raw_text = response.content[0].text
    if not raw_text or not raw_text.strip():
        raise ExtractionError("Empty response from Claude")

    try:
        return parse_draft(_parse_llm_json(raw_text))
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Claude response is not valid JSON: {exc}") from exc
    except DraftValidationError as exc:
        raise ExtractionError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Node function
# ---------------------------------------------------------------------------


def extractor_node(state: AnalysisState) -> dict[str, Any]:
    """Extract the draft record of one invoice document via Claude."""
    started_at = time.time()
    analysis_id = state.get("analysis_id", "")
    document_index = state.get("document_index", 0)
    file_name = state.get("file_name") or f"document-{document_index + 1}"
    mime_type = state.get("mime_type", "")
    document_b64 = state.get("document_b64", "")

    logs: list[dict] = list(state.get("logs") or [])
    pipeline_trace: list[dict] = list(state.get("pipeline_trace") or [])

    ts = lambda: int(time.time() * 1000)  # noqa: E731

    def log(msg: str) -> None:
        logs.append({"agent": "extractor", "msg": msg, "ts": ts()})
        emit_log(analysis_id, "extractor", msg, document_index)

    log(f"Scanning document structure of '{file_name}' ({mime_type or 'unknown type'})...")
    log(f"Document payload: {len(document_b64)} base64 chars")
    log("Sending document to Claude for line-item extraction...")

    try:
        draft = extract_draft(mime_type, document_b64)
    except ExtractionError as exc:
        log(f"Extraction failed: {exc}")
        raise
    except anthropic.APIError as exc:
        log(f"Error calling Claude API: {exc}")
        raise ExtractionError(f"Claude API error: {exc}") from exc

    log(
        f"Extracted {len(draft.line_items)} carbon-relevant line items "
        f"(company='{draft.company_name or 'N/A'}', confidence={draft.confidence_score})"
    )

    duration_ms = int((time.time() - started_at) * 1000)
    pipeline_trace.append({"agent": "extractor", "started_at": started_at, "ms": duration_ms})
    log(f"Extraction complete in {duration_ms}ms")

    return {
        "draft": draft,
        "logs": logs,
        "pipeline_trace": pipeline_trace,
    }
