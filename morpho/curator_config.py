"""
Curator configuration for Morpho market risk ratings.

Resolution happens in two layers:
1. ``load_config_from_env`` reads ``CURATOR_*`` variables into a partial
   override dict (absent or unparsable variables are simply left out).
2. ``merge_config`` overlays a partial override dict on the defaults,
   normalizes the scoring weights and clamps percentage-like fields.

``load_curator_config`` combines both, with caller overrides taking
precedence over the environment.
"""

import math
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional

from utils.config import Config
from utils.logging import get_logger

logger = get_logger("morpho.curator_config")

PERCENTAGE_FIELDS = (
    "utilization_ceiling",
    "price_stress_pct",
    "liquidity_stress_pct",
    "withdrawal_liquidity_min_pct",
    "insolvency_tolerance_pct_tvl",
)


@dataclass(frozen=True)
class CuratorWeights:
    """Relative weights of the five sub-scores in the aggregate rating."""

    utilization: float
    rate_alignment: float
    stress_exposure: float
    withdrawal_liquidity: float
    liquidation_capacity: float

    def total(self) -> float:
        return sum(self.as_dict().values())

    def as_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class CuratorConfig:
    morpho_api_url: str
    utilization_ceiling: float
    utilization_buffer_hours: float
    max_utilization_beyond: float
    rate_alignment_eps: float
    rate_alignment_high_yield_buffer: float
    rate_alignment_high_yield_eps: float
    fallback_benchmark_rate: float
    price_stress_pct: float
    liquidity_stress_pct: float
    withdrawal_liquidity_min_pct: float
    insolvency_tolerance_pct_tvl: float
    min_tvl_usd: float
    weights: CuratorWeights
    config_version: str


DEFAULT_WEIGHTS = CuratorWeights(
    utilization=0.2,
    rate_alignment=0.2,
    stress_exposure=0.3,
    withdrawal_liquidity=0.15,
    liquidation_capacity=0.15,
)

DEFAULT_CURATOR_CONFIG = CuratorConfig(
    morpho_api_url="https://api.morpho.org/graphql",
    utilization_ceiling=0.9,
    utilization_buffer_hours=48,
    max_utilization_beyond=1.1,
    rate_alignment_eps=0.02,
    rate_alignment_high_yield_buffer=0.03,
    rate_alignment_high_yield_eps=0.01,
    fallback_benchmark_rate=0.05,
    price_stress_pct=0.3,
    liquidity_stress_pct=0.4,
    withdrawal_liquidity_min_pct=0.1,
    insolvency_tolerance_pct_tvl=0.01,
    min_tvl_usd=10_000,
    weights=DEFAULT_WEIGHTS,
    config_version="2024-11-curator-v2",
)

WEIGHT_KEYS = tuple(DEFAULT_WEIGHTS.as_dict())
CONFIG_KEYS = tuple(f.name for f in fields(CuratorConfig))


def _clamp_pct(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))


def resolve_weights(overrides: Optional[Mapping[str, Optional[float]]] = None) -> CuratorWeights:
    """
    Overlay partial weight overrides on the defaults and normalize to sum 1.

    If the overlaid weights sum to zero the complete default set is used; weights
    are never partially mixed with defaults after that point.

    Args:
        overrides: Mapping of weight name to value. ``None`` values are ignored,
            negative or non-finite values count as zero.

    Returns:
        Weights summing to 1.
    """
    supplied = {key: value for key, value in (overrides or {}).items() if value is not None}
    if not supplied:
        return DEFAULT_WEIGHTS

    unknown = set(supplied) - set(WEIGHT_KEYS)
    if unknown:
        raise ValueError(f"Unknown curator weight(s): {', '.join(sorted(unknown))}")

    merged = DEFAULT_WEIGHTS.as_dict()
    for key, value in supplied.items():
        merged[key] = float(value) if math.isfinite(value) and value > 0 else 0.0

    total = sum(merged.values())
    if total <= 0:
        return DEFAULT_WEIGHTS
    return CuratorWeights(**{key: value / total for key, value in merged.items()})


def merge_config(overrides: Optional[Mapping[str, Any]] = None) -> CuratorConfig:
    """Resolve a full curator config from partial overrides. Does not read the environment."""
    overrides = dict(overrides or {})
    unknown = set(overrides) - set(CONFIG_KEYS)
    if unknown:
        raise ValueError(f"Unknown curator config key(s): {', '.join(sorted(unknown))}")

    weight_overrides = overrides.pop("weights", None)
    if isinstance(weight_overrides, CuratorWeights):
        weight_overrides = weight_overrides.as_dict()

    scalars = {key: value for key, value in overrides.items() if value is not None}
    config = replace(DEFAULT_CURATOR_CONFIG, **scalars, weights=resolve_weights(weight_overrides))

    clamped = {name: _clamp_pct(getattr(config, name)) for name in PERCENTAGE_FIELDS}
    return replace(config, **clamped)


class EnvOverride(NamedTuple):
    env_var: str
    field: str
    parser: Callable[[str], Any]
    percentage_like: bool = False


ENV_OVERRIDES = (
    EnvOverride("MORPHO_API_URL", "morpho_api_url", lambda key: Config.get_env(key) or None),
    EnvOverride("CURATOR_UTILIZATION_CEILING", "utilization_ceiling", Config.get_env_optional_float, True),
    EnvOverride("CURATOR_UTILIZATION_BUFFER_HOURS", "utilization_buffer_hours", Config.get_env_optional_float),
    EnvOverride("CURATOR_MAX_UTILIZATION_BEYOND", "max_utilization_beyond", Config.get_env_optional_float),
    EnvOverride("CURATOR_RATE_ALIGNMENT_EPS", "rate_alignment_eps", Config.get_env_optional_float),
    EnvOverride(
        "CURATOR_RATE_ALIGNMENT_HIGH_YIELD_BUFFER", "rate_alignment_high_yield_buffer", Config.get_env_optional_float
    ),
    EnvOverride("CURATOR_RATE_ALIGNMENT_HIGH_YIELD_EPS", "rate_alignment_high_yield_eps", Config.get_env_optional_float),
    EnvOverride("CURATOR_FALLBACK_BENCHMARK_RATE", "fallback_benchmark_rate", Config.get_env_optional_float),
    EnvOverride("CURATOR_PRICE_STRESS_PCT", "price_stress_pct", Config.get_env_optional_float, True),
    EnvOverride("CURATOR_LIQUIDITY_STRESS_PCT", "liquidity_stress_pct", Config.get_env_optional_float, True),
    EnvOverride(
        "CURATOR_WITHDRAWAL_LIQUIDITY_MIN_PCT", "withdrawal_liquidity_min_pct", Config.get_env_optional_float, True
    ),
    EnvOverride(
        "CURATOR_INSOLVENCY_TOLERANCE_PCT_TVL", "insolvency_tolerance_pct_tvl", Config.get_env_optional_float, True
    ),
    EnvOverride("CURATOR_MIN_TVL_USD", "min_tvl_usd", Config.get_env_optional_float),
    EnvOverride("CURATOR_CONFIG_VERSION", "config_version", lambda key: Config.get_env(key) or None),
)


def weight_env_var(weight_key: str) -> str:
    """Env var name for a weight: the camelCase key upper-cased, e.g. CURATOR_WEIGHT_STRESSEXPOSURE."""
    head, *rest = weight_key.split("_")
    camel = head + "".join(part.capitalize() for part in rest)
    return f"CURATOR_WEIGHT_{camel.upper()}"


def load_config_from_env() -> Dict[str, Any]:
    """Read curator overrides from the environment. Absent or invalid values are omitted."""
    config: Dict[str, Any] = {}
    for override in ENV_OVERRIDES:
        value = override.parser(override.env_var)
        if value is None:
            continue
        if override.percentage_like and value > 1:
            logger.warning(
                "%s looks like a percent (%s); expected a decimal fraction, e.g. 0.3 for 30%%",
                override.env_var,
                value,
            )
        config[override.field] = value

    weights = {}
    for key in WEIGHT_KEYS:
        value = Config.get_env_optional_float(weight_env_var(key))
        if value is not None:
            weights[key] = value
    if weights:
        config["weights"] = weights

    return config


def load_curator_config(overrides: Optional[Mapping[str, Any]] = None) -> CuratorConfig:
    """Resolve the effective config from the environment plus caller overrides (caller wins)."""
    env_overrides = load_config_from_env()
    overrides = dict(overrides or {})

    weights = dict(env_overrides.get("weights") or {})
    caller_weights = overrides.get("weights")
    if isinstance(caller_weights, CuratorWeights):
        caller_weights = caller_weights.as_dict()
    weights.update(caller_weights or {})

    source = {**env_overrides, **overrides, "weights": weights or None}
    return merge_config(source)
