"""
Tests for backend/tools/report_compiler.py.

Covers:
  - parse_draft(): neutral defaults for missing / null fields, structural failures
  - compile_line_item(): exact emission arithmetic, text fields carried through
  - compile_report(): totals, order preservation, empty reports, negative quantities
  - Immutability + JSON round-trip of the finalized report
"""

import json
import sys
import os

_backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

import pytest
from pydantic import ValidationError

from schemas import ESGReport, ExtractionDraft, LineItem, LineItemDraft
from tools.emission_factors import resolve_emission_factor
from tools.report_compiler import (
    DraftValidationError,
    compile_line_item,
    compile_report,
    parse_draft,
)


# ---------------------------------------------------------------------------
# parse_draft()
# ---------------------------------------------------------------------------


class TestParseDraft:
    def test_valid_record(self, fuel_draft):
        draft = parse_draft(fuel_draft)
        assert isinstance(draft, ExtractionDraft)
        assert draft.company_name == "Sharma Logistics Pvt Ltd"
        assert len(draft.line_items) == 3
        assert draft.confidence_score == "High"

    def test_accepts_json_text(self, fuel_draft):
        draft = parse_draft(json.dumps(fuel_draft))
        assert draft.invoice_date == "2024-03-14"

    def test_passes_through_existing_draft(self):
        draft = ExtractionDraft(company_name="X")
        assert parse_draft(draft) is draft

    def test_empty_object_gets_defaults(self):
        draft = parse_draft({})
        assert draft.company_name == ""
        assert draft.invoice_date == ""
        assert draft.line_items == []
        assert draft.confidence_score == "Low"

    def test_null_fields_get_defaults(self):
        draft = parse_draft({
            "company_name": None,
            "invoice_date": None,
            "line_items": None,
            "confidence_score": None,
        })
        assert draft.company_name == ""
        assert draft.line_items == []
        assert draft.confidence_score == "Low"

    def test_null_line_item_fields(self):
        draft = parse_draft({"line_items": [{
            "item": None, "quantity": None, "unit": None, "category": None, "evidence_text": None,
        }]})
        item = draft.line_items[0]
        assert item == LineItemDraft()

    @pytest.mark.parametrize("raw, expected", [
        ("HIGH", "High"), ("medium", "Medium"), (" low ", "Low"), ("Very sure", "Low"), (3, "Low"),
    ])
    def test_confidence_canonicalised(self, raw, expected):
        assert parse_draft({"confidence_score": raw}).confidence_score == expected

    @pytest.mark.parametrize("raw, expected", [
        (500, 500.0), (12.5, 12.5), ("500", 500.0), ("1,200.5", 1200.5), ("-3", -3.0),
        ("about 40", None), ("", None), (True, None), ([1], None), ({"v": 1}, None),
        (10 ** 400, None), ("1e400", None), (float("inf"), None),
    ])
    def test_quantity_coercion(self, raw, expected):
        draft = parse_draft({"line_items": [{"item": "Diesel", "quantity": raw}]})
        assert draft.line_items[0].quantity == expected

    def test_non_object_line_item_kept_as_empty_row(self):
        draft = parse_draft({"line_items": [{"item": "Diesel", "quantity": 10}, "garbage", None]})
        assert len(draft.line_items) == 3
        assert draft.line_items[1] == LineItemDraft()
        assert draft.line_items[2] == LineItemDraft()

    @pytest.mark.parametrize("raw", [[], [{"item": "Diesel"}], 42, None, "not json", b"{broken"])
    def test_non_object_record_raises(self, raw):
        with pytest.raises(DraftValidationError):
            parse_draft(raw)

    @pytest.mark.parametrize("line_items", [{"item": "Diesel"}, "Diesel 500 L", 7])
    def test_non_list_line_items_raises(self, line_items):
        with pytest.raises(DraftValidationError):
            parse_draft({"company_name": "X", "line_items": line_items})

    def test_draft_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_draft([])


# ---------------------------------------------------------------------------
# compile_line_item()
# ---------------------------------------------------------------------------


class TestCompileLineItem:
    def test_diesel_example(self):
        item = compile_line_item(LineItemDraft(
            item="Diesel Fuel Purchase", quantity=500, unit="liters",
            category="Energy", evidence_text="HSD Diesel 500 L",
        ))
        assert item.emission_factor == 2.6
        assert item.carbon_emission_kg == 1300.0

    def test_emission_is_exact_product(self):
        draft = LineItemDraft(item="Grid Electricity", quantity=1234.567, unit="kWh", category="Energy")
        item = compile_line_item(draft)
        assert item.carbon_emission_kg == 1234.567 * 0.82

    def test_null_quantity_counts_as_zero(self):
        item = compile_line_item(LineItemDraft(item="Diesel", quantity=None, category="Energy"))
        assert item.quantity is None
        assert item.emission_factor == 2.6
        assert item.carbon_emission_kg == 0

    def test_zero_quantity(self):
        item = compile_line_item(LineItemDraft(item="Plastic granules", quantity=0, category="Raw Material"))
        assert item.carbon_emission_kg == 0

    def test_unresolved_item(self):
        item = compile_line_item(LineItemDraft(item="misc", quantity=10, category="other"))
        assert item.emission_factor == 0.0
        assert item.carbon_emission_kg == 0.0

    def test_negative_quantity_not_clamped(self):
        item = compile_line_item(LineItemDraft(item="Diesel return", quantity=-20, category="Energy"))
        assert item.carbon_emission_kg == -20 * 2.6

    def test_text_fields_carried_through_verbatim(self):
        evidence = "  Diesel (HSD)   500 L\t@ ₹89.62 — see annex  "
        item = compile_line_item(LineItemDraft(
            item=" Diesel ", quantity=1, unit="L ", category="Energy ", evidence_text=evidence,
        ))
        assert item.evidence_text == evidence
        assert item.item == " Diesel "
        assert item.unit == "L "
        assert item.category == "Energy "


# ---------------------------------------------------------------------------
# compile_report()
# ---------------------------------------------------------------------------


class TestCompileReport:
    def test_returns_report(self, fuel_draft):
        report = compile_report(fuel_draft)
        assert isinstance(report, ESGReport)
        assert report.company_name == "Sharma Logistics Pvt Ltd"
        assert report.invoice_date == "2024-03-14"
        assert report.confidence_score == "High"

    def test_every_item_equals_quantity_times_factor(self, fuel_draft):
        report = compile_report(fuel_draft)
        for raw, item in zip(fuel_draft["line_items"], report.line_items):
            factor = resolve_emission_factor(raw["item"], raw["category"])
            assert item.emission_factor == factor
            assert item.carbon_emission_kg == (raw["quantity"] or 0) * factor

    def test_total_is_sum_of_items(self, fuel_draft):
        report = compile_report(fuel_draft)
        assert report.total_carbon_emission_kg == sum(
            item.carbon_emission_kg or 0 for item in report.line_items
        )

    def test_order_preserved(self, fuel_draft):
        report = compile_report(fuel_draft)
        assert [item.item for item in report.line_items] == [
            "Diesel Fuel Purchase", "Grid Electricity", "Corrugated Packaging",
        ]

    def test_empty_line_items_total_zero(self):
        report = compile_report({"company_name": "Empty Co", "line_items": []})
        assert report.line_items == ()
        assert report.total_carbon_emission_kg == 0
        assert report.total_carbon_emission_kg is not None

    def test_missing_everything(self):
        report = compile_report({})
        assert report.company_name == ""
        assert report.confidence_score == "Low"
        assert report.total_carbon_emission_kg == 0

    def test_malformed_line_item_contributes_zero(self):
        report = compile_report({"line_items": [
            {"item": "Diesel", "quantity": 10, "category": "Energy"},
            "garbage",
            {"item": "Diesel", "quantity": "ten", "category": "Energy"},
        ]})
        assert len(report.line_items) == 3
        assert report.line_items[1].carbon_emission_kg == 0
        assert report.line_items[2].carbon_emission_kg == 0
        assert report.total_carbon_emission_kg == 10 * 2.6

    def test_negative_quantity_reduces_total(self):
        report = compile_report({"line_items": [
            {"item": "Diesel", "quantity": 100, "category": "Energy"},
            {"item": "Diesel credit note", "quantity": -40, "category": "Energy"},
        ]})
        assert report.total_carbon_emission_kg == 100 * 2.6 + (-40 * 2.6)

    def test_oversized_integer_quantity_degrades_item(self):
        raw = '{"line_items": [{"item": "Diesel", "quantity": 1' + "0" * 400 + '},' \
              ' {"item": "Paper", "quantity": 2, "category": "OpEx"}]}'
        report = compile_report(raw)
        assert report.line_items[0].quantity is None
        assert report.line_items[0].carbon_emission_kg == 0
        assert report.total_carbon_emission_kg == 2 * 1.3

    def test_out_of_range_product_contributes_zero(self):
        report = compile_report({"line_items": [
            {"item": "Plastic granules", "quantity": 1e308, "category": "Raw Material"},
            {"item": "Diesel", "quantity": 10, "category": "Energy"},
        ]})
        assert report.line_items[0].quantity == 1e308
        assert report.line_items[0].emission_factor == 6.0
        assert report.line_items[0].carbon_emission_kg == 0.0
        assert report.total_carbon_emission_kg == 10 * 2.6

    def test_total_overflow_zeroes_the_overflowing_item(self):
        report = compile_report({"line_items": [
            {"item": "Grid electricity", "quantity": 1.5e308, "category": "Energy"},
            {"item": "Grid electricity", "quantity": 1.5e308, "category": "Energy"},
        ]})
        assert report.line_items[0].carbon_emission_kg == 1.5e308 * 0.82
        assert report.line_items[1].carbon_emission_kg == 0.0
        assert report.total_carbon_emission_kg == 1.5e308 * 0.82

    def test_structural_failure_raises(self):
        with pytest.raises(DraftValidationError):
            compile_report({"line_items": "Diesel 500 L"})

    def test_deterministic(self, fuel_draft):
        assert compile_report(fuel_draft) == compile_report(fuel_draft)

    def test_does_not_mutate_input(self, fuel_draft):
        before = json.dumps(fuel_draft, sort_keys=True)
        compile_report(fuel_draft)
        assert json.dumps(fuel_draft, sort_keys=True) == before


# ---------------------------------------------------------------------------
# Immutability + serialisation
# ---------------------------------------------------------------------------


class TestReportSnapshot:
    def test_report_is_frozen(self, fuel_draft):
        report = compile_report(fuel_draft)
        with pytest.raises(ValidationError):
            report.total_carbon_emission_kg = 0

    def test_line_item_is_frozen(self, fuel_draft):
        report = compile_report(fuel_draft)
        with pytest.raises(ValidationError):
            report.line_items[0].carbon_emission_kg = 0

    def test_line_items_is_tuple(self, fuel_draft):
        assert isinstance(compile_report(fuel_draft).line_items, tuple)

    def test_json_round_trip(self, fuel_draft):
        report = compile_report(fuel_draft)
        restored = ESGReport.model_validate_json(report.model_dump_json())
        assert restored == report

    def test_json_round_trip_with_null_quantity(self):
        report = compile_report({"line_items": [{"item": "Diesel", "quantity": None, "evidence_text": "n/a"}]})
        restored = ESGReport.model_validate_json(report.model_dump_json())
        assert restored == report
        assert restored.line_items[0].quantity is None

    def test_json_round_trip_with_out_of_range_item(self):
        report = compile_report({"line_items": [
            {"item": "Plastic granules", "quantity": 1e308, "category": "Raw Material"},
        ]})
        restored = ESGReport.model_validate_json(report.model_dump_json())
        assert restored == report
        assert restored.total_carbon_emission_kg == 0.0

    def test_total_must_match_line_items(self, fuel_draft):
        report = compile_report(fuel_draft)
        with pytest.raises(ValidationError):
            ESGReport(
                company_name=report.company_name,
                invoice_date=report.invoice_date,
                line_items=report.line_items,
                total_carbon_emission_kg=report.total_carbon_emission_kg + 999.0,
                confidence_score=report.confidence_score,
            )

    def test_empty_report_with_nonzero_total_rejected(self):
        with pytest.raises(ValidationError):
            ESGReport(
                company_name="X", invoice_date="", line_items=(),
                total_carbon_emission_kg=999.0, confidence_score="Low",
            )

    def test_dump_field_names(self, fuel_draft):
        dumped = compile_report(fuel_draft).model_dump()
        assert set(dumped) == {
            "company_name", "invoice_date", "line_items", "total_carbon_emission_kg", "confidence_score",
        }
        assert set(dumped["line_items"][0]) == {
            "item", "quantity", "unit", "category", "emission_factor", "carbon_emission_kg", "evidence_text",
        }

    def test_line_item_model(self, fuel_draft):
        assert all(isinstance(item, LineItem) for item in compile_report(fuel_draft).line_items)
