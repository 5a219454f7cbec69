"""
Morpho market risk rating.

Turns one market's state into five sub-scores in [0, 1] and a 0-100 rating:
1. Utilization against the configured ceiling
2. Supply rate alignment with a benchmark rate
3. Stress exposure: insolvency after a collateral price shock
4. Withdrawal liquidity against a minimum share of TVL
5. Liquidation capacity: stressed liquidity against the insolvency debt

Scoring is pure and never raises. Missing, negative or non-finite inputs
degrade to safe defaults; markets below ``min_tvl_usd`` still get every
sub-score but no rating.
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional

from morpho.curator_config import CuratorConfig, CuratorWeights
from utils.logging import format_context, get_logger

logger = get_logger("morpho.risk_rating")

UNKNOWN_SYMBOL = "UNKNOWN"

# Markets at or above this TVL get scaled tolerance and softer curves
LARGE_MARKET_TVL_USD = 50_000_000
ULTRA_LARGE_MARKET_TVL_USD = 500_000_000
MEGA_MARKET_TVL_USD = 2_000_000_000
ULTRA_LARGE_MARKET_TOLERANCE = 0.20  # tolerance at $500M
MAX_LARGE_MARKET_TOLERANCE = 0.35  # tolerance at $2B and above

# Utilization is scored against a slightly tighter ceiling than configured
UTILIZATION_SAFETY_MARGIN = 0.98
UTILIZATION_ANOMALY_MARGIN = 0.05

# Soft curve: exposure up to 80% of tolerance costs at most 10%
SOFT_CURVE_KNEE = 0.8
SOFT_CURVE_KNEE_PENALTY = 0.1
SOFT_CURVE_EXPONENT = 1.5
LARGE_MARKET_COVERAGE_EXPONENT = 0.6


@dataclass(frozen=True)
class MarketAsset:
    symbol: Optional[str] = None
    address: Optional[str] = None
    decimals: Optional[int] = None


@dataclass(frozen=True)
class MarketState:
    """Market state as reported by the Morpho API. Every field may be missing."""

    supply_assets_usd: Optional[float] = None
    borrow_assets_usd: Optional[float] = None
    collateral_assets_usd: Optional[float] = None
    liquidity_assets_usd: Optional[float] = None
    size_usd: Optional[float] = None
    utilization: Optional[float] = None
    supply_apy: Optional[float] = None
    borrow_apy: Optional[float] = None


@dataclass(frozen=True)
class Market:
    id: str
    unique_key: Optional[str] = None
    chain_id: Optional[int] = None
    loan_asset: Optional[MarketAsset] = None
    collateral_asset: Optional[MarketAsset] = None
    state: Optional[MarketState] = None
    lltv: Optional[float] = None  # liquidation LTV as a fraction, e.g. 0.86
    oracle_address: Optional[str] = None


@dataclass(frozen=True)
class MarketMetrics:
    id: str
    symbol: str
    collateral_symbol: str
    utilization: float
    utilization_score: float
    supply_rate: Optional[float]
    borrow_rate: Optional[float]
    benchmark_supply_rate: float
    rate_alignment_score: float
    potential_insolvency_usd: float
    insolvency_pct_of_tvl: float
    insolvency_tolerance_pct_tvl: float
    stress_exposure_score: float
    available_liquidity: float
    required_liquidity: float
    withdrawal_liquidity_score: float
    liquidator_capacity_post_stress: float
    liquidation_capacity_score: float
    tvl_usd: float
    min_tvl_threshold_hit: bool
    insufficient_tvl: bool
    effective_weights: CuratorWeights
    rating: Optional[int]
    config_version: Optional[str]
    raw: Market

    def sub_scores(self) -> Dict[str, float]:
        """Sub-scores keyed by the weight they are multiplied with."""
        return {
            "utilization": self.utilization_score,
            "rate_alignment": self.rate_alignment_score,
            "stress_exposure": self.stress_exposure_score,
            "withdrawal_liquidity": self.withdrawal_liquidity_score,
            "liquidation_capacity": self.liquidation_capacity_score,
        }


def normalize01(value: float) -> float:
    """Clamp to [0, 1]; NaN and infinities map to 0."""
    if not math.isfinite(value):
        return 0.0
    if value <= 0:
        return 0.0
    if value >= 1:
        return 1.0
    return value


def finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def non_negative(value: Optional[float]) -> float:
    value = finite_or_none(value)
    return max(value, 0.0) if value is not None else 0.0


def resolve_tvl(state: Optional[MarketState]) -> float:
    """Reported size when positive, otherwise supply + borrow."""
    if state is None:
        return 0.0
    size = finite_or_none(state.size_usd)
    if size is not None and size > 0:
        return size
    return non_negative(state.supply_assets_usd) + non_negative(state.borrow_assets_usd)


def resolve_utilization(state: Optional[MarketState]) -> float:
    """Reported utilization, or borrow / supply with supply floored at 1 USD."""
    if state is None:
        return 0.0
    utilization = finite_or_none(state.utilization)
    if utilization is not None:
        return utilization
    return non_negative(state.borrow_assets_usd) / max(non_negative(state.supply_assets_usd), 1.0)


def utilization_score(utilization: float, config: CuratorConfig) -> float:
    safe_ceiling = config.utilization_ceiling * UTILIZATION_SAFETY_MARGIN
    if utilization <= safe_ceiling:
        return 1.0
    max_beyond = config.max_utilization_beyond
    if utilization > max_beyond or max_beyond <= safe_ceiling:
        return 0.0
    return normalize01(1 - (utilization - safe_ceiling) / (max_beyond - safe_ceiling))


def rate_alignment_score(supply_rate: float, benchmark: float, config: CuratorConfig) -> float:
    """
    Linear falloff with distance from the benchmark, one full point per ``rate_alignment_eps``.

    Rates above ``benchmark + high_yield_buffer`` lose an extra point per
    ``high_yield_eps`` of excess.
    """
    deviation = abs(supply_rate - benchmark)
    eps = config.rate_alignment_eps
    if eps > 0:
        score = 1 - deviation / eps
    else:
        score = 1.0 if deviation == 0 else 0.0

    high_yield_threshold = benchmark + config.rate_alignment_high_yield_buffer
    if supply_rate > high_yield_threshold:
        high_yield_eps = config.rate_alignment_high_yield_eps
        excess = supply_rate - high_yield_threshold
        score -= excess / high_yield_eps if high_yield_eps > 0 else 1.0
    return normalize01(score)


def scaled_insolvency_tolerance(tvl_usd: float, base_tolerance: float) -> float:
    """
    Insolvency tolerance (share of TVL) for a market of the given size.

    Below $50M the base tolerance applies. Up to $500M it rises with the square
    root of progress toward 20%; from $500M it rises linearly to 35% at $2B.
    Never lower than the base tolerance.
    """
    if tvl_usd < LARGE_MARKET_TVL_USD:
        return base_tolerance
    if tvl_usd < ULTRA_LARGE_MARKET_TVL_USD:
        progress = (tvl_usd - LARGE_MARKET_TVL_USD) / (ULTRA_LARGE_MARKET_TVL_USD - LARGE_MARKET_TVL_USD)
        scaled = base_tolerance + (ULTRA_LARGE_MARKET_TOLERANCE - base_tolerance) * math.sqrt(progress)
    else:
        progress = min(1.0, (tvl_usd - ULTRA_LARGE_MARKET_TVL_USD) / (MEGA_MARKET_TVL_USD - ULTRA_LARGE_MARKET_TVL_USD))
        scaled = ULTRA_LARGE_MARKET_TOLERANCE + (MAX_LARGE_MARKET_TOLERANCE - ULTRA_LARGE_MARKET_TOLERANCE) * progress
    return max(base_tolerance, normalize01(scaled))


def soft_exposure_score(exposure: float, tolerance: float) -> float:
    """Near 1 up to 80% of tolerance (0.9 at the knee), then a 1.5-power falloff to 0 at tolerance."""
    if exposure <= 0:
        return 1.0
    if tolerance <= 0:
        return 0.0
    knee = tolerance * SOFT_CURVE_KNEE
    if exposure <= knee:
        return 1 - SOFT_CURVE_KNEE_PENALTY * exposure / knee
    excess_ratio = (exposure - knee) / (tolerance - knee)
    top = 1 - SOFT_CURVE_KNEE_PENALTY
    return normalize01(top - top * excess_ratio**SOFT_CURVE_EXPONENT)


def stress_exposure_score(insolvency_pct_of_tvl: float, tolerance: float, tvl_usd: float) -> float:
    if tvl_usd >= LARGE_MARKET_TVL_USD:
        return soft_exposure_score(insolvency_pct_of_tvl, tolerance)
    if insolvency_pct_of_tvl <= 0:
        return 1.0
    if tolerance <= 0:
        return 0.0
    return normalize01(1 - insolvency_pct_of_tvl / tolerance)


def withdrawal_liquidity_score(available_liquidity: float, required_liquidity: float) -> float:
    if available_liquidity >= required_liquidity:
        return 1.0
    return normalize01(available_liquidity / max(required_liquidity, 1.0))


def liquidation_capacity_score(capacity_post_stress: float, debt_to_liquidate: float, tvl_usd: float) -> float:
    if capacity_post_stress >= debt_to_liquidate:
        return 1.0
    coverage = normalize01(capacity_post_stress / max(debt_to_liquidate, 1.0))
    if tvl_usd >= LARGE_MARKET_TVL_USD:
        return normalize01(coverage**LARGE_MARKET_COVERAGE_EXPONENT)
    return coverage


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_metrics_for_market(
    market: Market,
    config: CuratorConfig,
    benchmark_supply_rate_override: Optional[float] = None,
) -> MarketMetrics:
    """Score one market against a resolved curator config."""
    state = market.state
    supplied = non_negative(state.supply_assets_usd if state else None)
    borrowed = non_negative(state.borrow_assets_usd if state else None)
    available_liquidity = non_negative(state.liquidity_assets_usd if state else None)
    supply_rate = finite_or_none(state.supply_apy) if state else None
    borrow_rate = finite_or_none(state.borrow_apy) if state else None

    tvl = resolve_tvl(state)
    utilization = resolve_utilization(state)
    insufficient_tvl = tvl < config.min_tvl_usd

    util_score = utilization_score(utilization, config)
    if utilization > config.max_utilization_beyond + UTILIZATION_ANOMALY_MARGIN:
        logger.warning(
            "Utilization anomaly detected: %s",
            format_context(
                market_id=market.id,
                utilization=utilization,
                max_utilization_beyond=config.max_utilization_beyond,
            ),
        )

    benchmark = finite_or_none(benchmark_supply_rate_override)
    if benchmark is None:
        benchmark = config.fallback_benchmark_rate
    rate_score = rate_alignment_score(supply_rate or 0.0, benchmark, config)

    collateral_after_shock = max(supplied * (1 - config.price_stress_pct), 0.0)
    potential_insolvency_usd = max(0.0, borrowed - collateral_after_shock)
    insolvency_pct_of_tvl = potential_insolvency_usd / max(tvl, 1.0)
    tolerance = scaled_insolvency_tolerance(tvl, config.insolvency_tolerance_pct_tvl)
    stress_score = stress_exposure_score(insolvency_pct_of_tvl, tolerance, tvl)

    required_liquidity = tvl * config.withdrawal_liquidity_min_pct
    withdrawal_score = withdrawal_liquidity_score(available_liquidity, required_liquidity)

    capacity_post_stress = available_liquidity * (1 - config.liquidity_stress_pct)
    liquidation_score = liquidation_capacity_score(capacity_post_stress, potential_insolvency_usd, tvl)

    weights = config.weights
    aggregate = (
        util_score * weights.utilization
        + rate_score * weights.rate_alignment
        + stress_score * weights.stress_exposure
        + withdrawal_score * weights.withdrawal_liquidity
        + liquidation_score * weights.liquidation_capacity
    )

    loan_symbol = market.loan_asset.symbol if market.loan_asset else None
    collateral_symbol = market.collateral_asset.symbol if market.collateral_asset else None

    if insufficient_tvl:
        rating = None
        logger.debug(
            "Market has insufficient TVL for rating: %s",
            format_context(
                market_id=market.id,
                symbol=loan_symbol,
                tvl_usd=tvl,
                min_tvl_usd=config.min_tvl_usd,
                supplied=supplied,
                borrowed=borrowed,
                size_usd=state.size_usd if state else None,
            ),
        )
    else:
        rating = _round_half_up(normalize01(aggregate) * 100)

    return MarketMetrics(
        id=market.id,
        symbol=loan_symbol if loan_symbol is not None else UNKNOWN_SYMBOL,
        collateral_symbol=collateral_symbol if collateral_symbol is not None else UNKNOWN_SYMBOL,
        utilization=utilization,
        utilization_score=util_score,
        supply_rate=supply_rate,
        borrow_rate=borrow_rate,
        benchmark_supply_rate=benchmark,
        rate_alignment_score=rate_score,
        potential_insolvency_usd=potential_insolvency_usd,
        insolvency_pct_of_tvl=insolvency_pct_of_tvl,
        insolvency_tolerance_pct_tvl=tolerance,
        stress_exposure_score=stress_score,
        available_liquidity=available_liquidity,
        required_liquidity=required_liquidity,
        withdrawal_liquidity_score=withdrawal_score,
        liquidator_capacity_post_stress=capacity_post_stress,
        liquidation_capacity_score=liquidation_score,
        tvl_usd=tvl,
        min_tvl_threshold_hit=insufficient_tvl,
        insufficient_tvl=insufficient_tvl,
        effective_weights=weights,
        rating=rating,
        config_version=config.config_version,
        raw=market,
    )
