"""
Morpho market risk grade.

Equal-weight 0-100 market score with a letter grade (A+ to F), built from:
1. Oracle: freshness of the last price update, opaque oracles score low
2. LTV: distance of the liquidation LTV from 90%
3. Liquidity: utilization bands
4. Liquidation: liquidity coverage of liquidations after -10%, -5% and -3% collateral shocks

The weighted score is then capped when a single component is bad enough
to rule out a good grade. Idle markets (no LLTV or no known collateral) are
not graded.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from morpho.risk_rating import UNKNOWN_SYMBOL, Market, MarketState, finite_or_none, non_negative
from utils.logging import format_context, get_logger

logger = get_logger("morpho.market_risk_grade")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

OPAQUE_ORACLE_SCORE = 20.0
UNKNOWN_AGE_ORACLE_SCORE = 60.0
FRESH_ORACLE_HOURS = 1
# (age in hours, score) breakpoints, 20 at 30 days and older
ORACLE_AGE_CURVE = [(1, 100), (24, 80), (168, 60), (720, 20)]

TARGET_LLTV_PCT = 90.0
TARGET_LLTV_WINDOW_PCT = 0.05
# (points above 90% LLTV, score) breakpoints
LLTV_ABOVE_TARGET_CURVE = [(0, 100), (2, 80), (5, 50), (7, 20), (10, 0)]

# (utilization, score) breakpoints
UTILIZATION_CURVE = [(0.0, 100), (0.70, 80), (0.85, 60), (0.95, 20), (1.0, 0)]

# (collateral price shock, score when liquidations are fully covered)
SHOCK_LADDER = [(-0.10, 100.0), (-0.05, 80.0), (-0.03, 60.0)]
PARTIAL_COVERAGE_PENALTY = 20.0

COMPONENT_WEIGHT = 0.25

# Caps on the final score
OPAQUE_ORACLE_CAP = 54.0
LOW_LIQUIDITY_SCORE = 20.0
LOW_LIQUIDITY_CAP = 60.0
FAILED_SHOCK_SCORE = 80.0  # below this the -5% shock is not covered
FAILED_SHOCK_CAP = 68.0

GRADE_THRESHOLDS = [
    (93, "A+"),
    (90, "A"),
    (87, "A-"),
    (84, "B+"),
    (80, "B"),
    (77, "B-"),
    (74, "C+"),
    (70, "C"),
    (65, "C-"),
    (60, "D"),
]
LOWEST_GRADE = "F"


@dataclass(frozen=True)
class MarketRiskGrade:
    id: str
    oracle_score: float
    ltv_score: float
    liquidity_score: float
    liquidation_score: float
    market_risk_score: float
    grade: str


def _piecewise(x: float, curve: Sequence[Tuple[float, float]]) -> float:
    """Linear interpolation over sorted (x, y) breakpoints, flat outside them."""
    if x <= curve[0][0]:
        return float(curve[0][1])
    for (x0, y0), (x1, y1) in zip(curve, curve[1:]):
        if x <= x1:
            return y0 + (y1 - y0) * (x - x0) / (x1 - x0)
    return float(curve[-1][1])


def oracle_score(oracle_address: Optional[str], oracle_age_seconds: Optional[float] = None) -> float:
    """
    100 for an update in the last hour, decaying to 80 at a day, 60 at a week
    and 20 at 30 days. A real oracle with unknown update age scores 60; a
    missing or zero oracle address scores 20.
    """
    if not oracle_address or oracle_address.lower() == ZERO_ADDRESS:
        return OPAQUE_ORACLE_SCORE
    age_seconds = finite_or_none(oracle_age_seconds)
    if age_seconds is None:
        return UNKNOWN_AGE_ORACLE_SCORE
    age_hours = max(age_seconds, 0.0) / 3600
    if age_hours < FRESH_ORACLE_HOURS:
        return 100.0
    return _piecewise(age_hours, ORACLE_AGE_CURVE)


def ltv_score(lltv: Optional[float]) -> float:
    """100 at 90% LLTV, one point per point below it and a steeper falloff above."""
    lltv = finite_or_none(lltv)
    if not lltv or lltv <= 0:
        return 0.0
    lltv_pct = lltv * 100
    if abs(lltv_pct - TARGET_LLTV_PCT) <= TARGET_LLTV_WINDOW_PCT:
        return 100.0
    if lltv_pct < TARGET_LLTV_PCT:
        return max(0.0, 100 - (TARGET_LLTV_PCT - lltv_pct))
    return _piecewise(lltv_pct - TARGET_LLTV_PCT, LLTV_ABOVE_TARGET_CURVE)


def liquidity_score(state: Optional[MarketState]) -> float:
    if state is None:
        return 0.0
    utilization = finite_or_none(state.utilization)
    if utilization is None:
        supplied = non_negative(state.supply_assets_usd)
        if supplied == 0:
            return 0.0
        utilization = non_negative(state.borrow_assets_usd) / supplied
    return _piecewise(min(max(utilization, 0.0), 1.0), UTILIZATION_CURVE)


def _coverage(liquidations: float, available_liquidity: float) -> float:
    if liquidations <= 0:
        return 1.0
    if available_liquidity <= 0:
        return 0.0
    return min(1.0, available_liquidity / liquidations)


def liquidation_score(state: Optional[MarketState], lltv: Optional[float]) -> float:
    """
    Walks the shock ladder from -10% down to -3%. The first shock whose
    liquidations the free liquidity fully covers gives its ladder score; a
    partial cover loses up to 20 points from it. Collateral value falls back
    to total supply when the API does not report it.
    """
    lltv = finite_or_none(lltv)
    if state is None or not lltv or lltv <= 0:
        return 0.0

    supplied = non_negative(state.supply_assets_usd)
    borrowed = non_negative(state.borrow_assets_usd)
    collateral = non_negative(state.collateral_assets_usd) or supplied
    available_liquidity = supplied - borrowed
    if collateral == 0 or borrowed == 0:
        return 100.0

    for shock, full_cover_score in SHOCK_LADDER:
        liquidations = max(0.0, borrowed - collateral * (1 + shock) * lltv)
        coverage = _coverage(liquidations, available_liquidity)
        if coverage >= 1:
            return full_cover_score
        if coverage > 0:
            return full_cover_score - (1 - coverage) * PARTIAL_COVERAGE_PENALTY
    return 0.0


def apply_global_caps(oracle: float, liquidity: float, liquidation: float, base_score: float) -> float:
    score = base_score
    if oracle <= OPAQUE_ORACLE_SCORE:
        score = min(score, OPAQUE_ORACLE_CAP)
    if liquidity <= LOW_LIQUIDITY_SCORE:
        score = min(score, LOW_LIQUIDITY_CAP)
    if liquidation < FAILED_SHOCK_SCORE:
        score = min(score, FAILED_SHOCK_CAP)
    return score


def grade_for_score(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return LOWEST_GRADE


def is_market_idle(market: Market) -> bool:
    symbol = market.collateral_asset.symbol if market.collateral_asset else None
    return not market.lltv or not symbol or symbol.upper() == UNKNOWN_SYMBOL


def grade_market(market: Market, oracle_age_seconds: Optional[float] = None) -> MarketRiskGrade:
    """Grade one market. ``oracle_age_seconds`` is the age of the last oracle update, when known."""
    oracle = oracle_score(market.oracle_address, oracle_age_seconds)
    ltv = ltv_score(market.lltv)
    liquidity = liquidity_score(market.state)
    liquidation = liquidation_score(market.state, market.lltv)

    base_score = COMPONENT_WEIGHT * (oracle + ltv + liquidity + liquidation)
    score = apply_global_caps(oracle, liquidity, liquidation, base_score)
    if score < base_score:
        logger.debug(
            "Market risk score capped: %s",
            format_context(market_id=market.id, base_score=base_score, capped_score=score),
        )

    return MarketRiskGrade(
        id=market.id,
        oracle_score=oracle,
        ltv_score=ltv,
        liquidity_score=liquidity,
        liquidation_score=liquidation,
        market_risk_score=score,
        grade=grade_for_score(score),
    )
