"""
Emission factor table and keyword resolver (kg CO2 per unit of quantity).

Resolution order for a line item:
  1. First keyword from EMISSION_FACTORS found in "<item> <category>" (lower-cased)
  2. Category fallback on the category label alone (energy / raw / opex)
  3. 0.0 — unknown items contribute nothing rather than failing the report

The tables are ordered tuples: iteration order is part of the output
contract, so "diesel generator" must hit "diesel" before any later keyword.
"""

from __future__ import annotations

from typing import Optional

from schemas import FactorMatch

# (keyword, kg CO2 per unit) — first match wins
EMISSION_FACTORS: tuple[tuple[str, float], ...] = (
    # Energy
    ("diesel", 2.6),        # per liter
    ("petrol", 2.3),        # per liter
    ("gasoline", 2.3),      # per liter
    ("electricity", 0.82),  # per kWh
    ("power", 0.82),        # per kWh
    ("lpg", 1.5),           # per liter (approx)
    ("gas", 2.0),           # generic gas
    # Raw Materials
    ("plastic", 6.0),       # per kg
    ("packaging", 6.0),     # assume plastic
    ("chemicals", 3.0),     # generic chemical
    # OpEx
    ("paper", 1.3),         # per kg
    ("printing", 1.3),      # per kg
    ("office", 1.3),        # generic
)

# (category substring, factor) — checked in order, a later match replaces an earlier one
CATEGORY_FALLBACKS: tuple[tuple[str, float], ...] = (
    ("energy", 0.82),
    ("raw", 3.0),
    ("opex", 1.3),
)

UNRESOLVED_FACTOR = 0.0


def build_search_key(item: Optional[str], category: Optional[str]) -> str:
    """Lower-cased "<item> <category>" string used for keyword matching."""
    return f"{item or ''} {category or ''}".lower()


def match_keyword(search_key: str) -> Optional[tuple[str, float]]:
    """Return the first (keyword, factor) pair contained in search_key."""
    for keyword, factor in EMISSION_FACTORS:
        if keyword in search_key:
            return keyword, factor
    return None


def match_category_fallback(category: Optional[str]) -> Optional[tuple[str, float]]:
    """Return the category-level fallback for a category label, if any."""
    category_key = (category or "").lower()
    matched: Optional[tuple[str, float]] = None
    for needle, factor in CATEGORY_FALLBACKS:
        if needle in category_key:
            matched = (needle, factor)
    return matched


def resolve_factor_match(item: Optional[str], category: Optional[str]) -> FactorMatch:
    """Resolve the emission factor for a line item along with the rule that produced it.

    Never raises: malformed or empty text resolves to UNRESOLVED_FACTOR.
    """
    hit = match_keyword(build_search_key(item, category))
    if hit is not None:
        return FactorMatch(factor=hit[1], basis="keyword", keyword=hit[0])

    fallback = match_category_fallback(category)
    if fallback is not None:
        return FactorMatch(factor=fallback[1], basis="category", keyword=fallback[0])

    return FactorMatch(factor=UNRESOLVED_FACTOR, basis="unresolved")


def resolve_emission_factor(item: Optional[str], category: Optional[str]) -> float:
    """Emission factor (kg CO2 per unit) for an item label + ESG category."""
    return resolve_factor_match(item, category).factor
