"""
Report analytics and two-document comparison.

Single report:  category_breakdown, top_contributor, dominant_category, summarize_report
Two reports:    total_delta, percent_change, category_matrix, compare_reports

Category labels are matched by exact string equality: "Energy" and "energy"
are separate rows.
Nothing here raises on empty reports — absent data yields None or 0.
"""

from __future__ import annotations

from typing import Optional

from schemas import (
    CategoryComparison,
    CategoryEmission,
    ComparisonResult,
    ESGReport,
    LineItem,
    ReportSummary,
)


def _category_sums(report: ESGReport) -> dict[str, float]:
    """Summed emission per category label, in first-seen order."""
    sums: dict[str, float] = {}
    for item in report.line_items:
        sums[item.category] = sums.get(item.category, 0.0) + (item.carbon_emission_kg or 0)
    return sums


# ---------------------------------------------------------------------------
# 1. Single-report analytics
# ---------------------------------------------------------------------------


def category_breakdown(report: ESGReport) -> tuple[CategoryEmission, ...]:
    return tuple(
        CategoryEmission(category=category, emission_kg=value)
        for category, value in _category_sums(report).items()
    )


def top_contributor(report: ESGReport) -> Optional[LineItem]:
    """Line item with the highest carbon_emission_kg (first one wins ties).

    Items without a computed emission rank below every numeric value.
    """
    best: Optional[LineItem] = None
    for item in report.line_items:
        if best is None:
            best = item
            continue
        if item.carbon_emission_kg is None:
            continue
        if best.carbon_emission_kg is None or item.carbon_emission_kg > best.carbon_emission_kg:
            best = item
    return best


def dominant_category(report: ESGReport) -> Optional[CategoryEmission]:
    """Category with the largest summed emission (first-seen category wins ties)."""
    best: Optional[CategoryEmission] = None
    for entry in category_breakdown(report):
        if best is None or entry.emission_kg > best.emission_kg:
            best = entry
    return best


def summarize_report(report: ESGReport) -> ReportSummary:
    return ReportSummary(
        total_carbon_emission_kg=report.total_carbon_emission_kg,
        line_item_count=len(report.line_items),
        category_breakdown=category_breakdown(report),
        top_contributor=top_contributor(report),
        dominant_category=dominant_category(report),
    )


# ---------------------------------------------------------------------------
# 2. Baseline vs comparison
# ---------------------------------------------------------------------------


def total_delta(baseline: ESGReport, comparison: ESGReport) -> float:
    """Signed change in total emissions: comparison minus baseline."""
    return comparison.total_carbon_emission_kg - baseline.total_carbon_emission_kg


def percent_change(baseline: ESGReport, comparison: ESGReport) -> float:
    """Delta as a percentage of the baseline total; 0 when the baseline is 0."""
    baseline_total = baseline.total_carbon_emission_kg
    if baseline_total == 0:
        return 0.0
    return (total_delta(baseline, comparison) / baseline_total) * 100


def category_matrix(baseline: ESGReport, comparison: ESGReport) -> tuple[CategoryComparison, ...]:
    """Per-category emissions for both reports.

    Rows follow first appearance across the baseline's items, then the
    comparison's. A category missing from one report contributes 0 there.
    """
    baseline_sums = _category_sums(baseline)
    comparison_sums = _category_sums(comparison)

    categories = list(baseline_sums)
    categories.extend(c for c in comparison_sums if c not in baseline_sums)

    return tuple(
        CategoryComparison(
            category=category,
            baseline_kg=baseline_sums.get(category, 0.0),
            comparison_kg=comparison_sums.get(category, 0.0),
        )
        for category in categories
    )


def compare_reports(baseline: ESGReport, comparison: ESGReport) -> ComparisonResult:
    """Full comparison of two finalized reports (baseline = first document)."""
    return ComparisonResult(
        baseline=baseline,
        comparison=comparison,
        baseline_total_kg=baseline.total_carbon_emission_kg,
        comparison_total_kg=comparison.total_carbon_emission_kg,
        delta_kg=total_delta(baseline, comparison),
        percent_change=percent_change(baseline, comparison),
        category_matrix=category_matrix(baseline, comparison),
        baseline_summary=summarize_report(baseline),
        comparison_summary=summarize_report(comparison),
    )
