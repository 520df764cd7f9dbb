"""
Shared test fixtures for unit tests.
"""

import base64
import json
import sys
import os
from unittest.mock import MagicMock, patch

# Ensure the backend directory is on the path so imports resolve correctly
# when pytest is run from the repo root or the backend directory.
_backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

import pytest
from state import AnalysisState


# Sample provider records — mimic what Claude returns for a fuel invoice and a print-shop invoice
SAMPLE_DRAFT_FUEL = {
    "company_name": "Sharma Logistics Pvt Ltd",
    "invoice_date": "2024-03-14",
    "line_items": [
        {
            "item": "Diesel Fuel Purchase",
            "quantity": 500,
            "unit": "liters",
            "category": "Energy",
            "evidence_text": "HSD Diesel 500 L @ 89.62",
        },
        {
            "item": "Grid Electricity",
            "quantity": 1200,
            "unit": "kWh",
            "category": "Energy",
            "evidence_text": "Electricity charges 1,200 kWh",
        },
        {
            "item": "Corrugated Packaging",
            "quantity": 40,
            "unit": "kg",
            "category": "Raw Material",
            "evidence_text": "Corrugated boxes (40 kg)",
        },
    ],
    "confidence_score": "High",
}

SAMPLE_DRAFT_PRINT = {
    "company_name": "Sharma Logistics Pvt Ltd",
    "invoice_date": "2024-04-14",
    "line_items": [
        {
            "item": "Diesel Fuel Purchase",
            "quantity": 300,
            "unit": "liters",
            "category": "Energy",
            "evidence_text": "HSD Diesel 300 L @ 90.10",
        },
        {
            "item": "A4 Paper Reams",
            "quantity": 25,
            "unit": "kg",
            "category": "OpEx",
            "evidence_text": "A4 copier paper 10 reams (25 kg)",
        },
    ],
    "confidence_score": "medium",
}


# ---------------------------------------------------------------------------
# Mock Claude API helpers
# ---------------------------------------------------------------------------


def _make_mock_claude_response(text: str) -> MagicMock:
    """Create a mock Anthropic Messages API response with the given text content."""
    mock_content_block = MagicMock()
    mock_content_block.text = text
    mock_response = MagicMock()
    mock_response.content = [mock_content_block]
    return mock_response


MOCK_EXTRACTOR_RESPONSE_JSON = json.dumps(SAMPLE_DRAFT_FUEL)


# ---------------------------------------------------------------------------
# Draft fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fuel_draft() -> dict:
    return json.loads(json.dumps(SAMPLE_DRAFT_FUEL))


@pytest.fixture
def print_draft() -> dict:
    return json.loads(json.dumps(SAMPLE_DRAFT_PRINT))


# ---------------------------------------------------------------------------
# Graph state fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def document_state() -> AnalysisState:
    """Minimal valid AnalysisState — only INIT keys set."""
    return {
        "analysis_id": "test-analysis-001",
        "document_index": 0,
        "file_name": "fuel-invoice.pdf",
        "mime_type": "application/pdf",
        "document_b64": base64.b64encode(b"%PDF-1.4 fake invoice").decode("ascii"),
        "logs": [],
        "pipeline_trace": [],
    }


# ---------------------------------------------------------------------------
# Mock Anthropic client fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_anthropic_client():
    """Patch anthropic.Anthropic to return a mock client with a realistic response."""
    mock_client = MagicMock()
    mock_client.messages.create.return_value = _make_mock_claude_response(MOCK_EXTRACTOR_RESPONSE_JSON)

    with patch("agents.extractor.anthropic.Anthropic", return_value=mock_client):
        yield mock_client
