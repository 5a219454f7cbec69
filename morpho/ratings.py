"""
Morpho market ratings report.

Fetches markets from the Morpho API, scores each one with the curator risk
rating and prints a table. Optionally alerts on Telegram when rated markets
fall below a minimum rating.
"""

import argparse
import sys
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from morpho.curator_config import CuratorConfig, load_curator_config
from morpho.market_data import DEFAULT_CHAIN_IDS, MarketDataError, fetch_morpho_markets
from morpho.market_risk_grade import grade_market, is_market_idle
from morpho.risk_rating import UNKNOWN_SYMBOL, Market, MarketMetrics, compute_metrics_for_market
from utils.chains import Chain
from utils.formatting import format_pct, format_usd
from utils.logging import get_logger
from utils.telegram import send_telegram_message

logger = get_logger("morpho.ratings")

PROTOCOL = "MORPHO"
MORPHO_APP_URL = "https://app.morpho.org"


def benchmark_for_market(
    market: Market,
    benchmark_rates: Optional[Mapping[str, float]],
    fallback: Optional[float] = None,
) -> Optional[float]:
    """Benchmark supply rate for the market's loan asset, keyed by upper-case symbol."""
    if not benchmark_rates:
        return fallback
    symbol = market.loan_asset.symbol if market.loan_asset else None
    if not symbol:
        return fallback
    rate = benchmark_rates.get(symbol.upper())
    return rate if isinstance(rate, (int, float)) else fallback


def rate_markets(
    markets: Iterable[Market],
    config: CuratorConfig,
    benchmark_rates: Optional[Mapping[str, float]] = None,
    market_id: Optional[str] = None,
) -> List[MarketMetrics]:
    """Score markets, best rating first. Unrated markets go last."""
    if market_id:
        markets = [market for market in markets if market_id in (market.id, market.unique_key)]

    metrics = [
        compute_metrics_for_market(
            market,
            config,
            benchmark_for_market(market, benchmark_rates, config.fallback_benchmark_rate),
        )
        for market in markets
    ]
    return sorted(metrics, key=lambda m: (m.rating is None, -(m.rating or 0)))


def get_market_ratings(
    limit: int = 500,
    market_id: Optional[str] = None,
    config_overrides: Optional[Mapping[str, Any]] = None,
    benchmark_rates: Optional[Mapping[str, float]] = None,
    chain_ids: Optional[List[int]] = None,
) -> List[MarketMetrics]:
    config = load_curator_config(config_overrides)
    markets = fetch_morpho_markets(limit, config, chain_ids)
    return rate_markets(markets, config, benchmark_rates, market_id)


def group_markets_by_underlying(metrics: Iterable[MarketMetrics]) -> Dict[str, List[MarketMetrics]]:
    grouped: Dict[str, List[MarketMetrics]] = defaultdict(list)
    for market in metrics:
        grouped[(market.symbol or UNKNOWN_SYMBOL).upper()].append(market)
    return dict(grouped)


def low_rated_markets(metrics: Iterable[MarketMetrics], threshold: int) -> List[MarketMetrics]:
    """Rated markets strictly below ``threshold``. Markets without a rating are not flagged."""
    return [market for market in metrics if market.rating is not None and market.rating < threshold]


def get_market_url(market: MarketMetrics) -> str:
    """App link on the market's own chain; markets without a chain id are on the default chain."""
    market_key = market.raw.unique_key or market.id
    chain_id = market.raw.chain_id if market.raw.chain_id is not None else DEFAULT_CHAIN_IDS[0]
    try:
        network = Chain.from_chain_id(chain_id).network_name
    except ValueError:
        logger.debug("No Morpho app network for chain %s", chain_id)
        return f"{MORPHO_APP_URL}/market?id={market_key}"
    return f"{MORPHO_APP_URL}/{network}/market/{market_key}"


def format_ratings_report(metrics: Iterable[MarketMetrics]) -> str:
    lines = []
    for market in metrics:
        rating = "n/a" if market.rating is None else str(market.rating)
        lines.append(
            f"{market.symbol}/{market.collateral_symbol} "
            f"rating: {rating} | TVL: {format_usd(market.tvl_usd)} | "
            f"util: {format_pct(market.utilization)} | supply APY: {format_pct(market.supply_rate)} | "
            f"insolvency: {format_pct(market.insolvency_pct_of_tvl)}"
        )
    return "\n".join(lines)


def format_grades_report(metrics: Iterable[MarketMetrics]) -> str:
    """Letter grade per market. Idle markets are left out."""
    lines = []
    for market in metrics:
        if is_market_idle(market.raw):
            continue
        grade = grade_market(market.raw)
        lines.append(
            f"{market.symbol}/{market.collateral_symbol} grade: {grade.grade} ({grade.market_risk_score:.1f}) | "
            f"oracle: {grade.oracle_score:.0f} | ltv: {grade.ltv_score:.0f} | "
            f"liquidity: {grade.liquidity_score:.0f} | liquidation: {grade.liquidation_score:.0f}"
        )
    return "\n".join(lines)


def parse_chain(value: str) -> int:
    """Chain id from a number or a network name, e.g. ``8453`` or ``base``."""
    if value.isdigit():
        return int(value)
    try:
        return Chain.from_name(value).chain_id
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def parse_benchmarks(values: Optional[List[str]]) -> Dict[str, float]:
    """Parse ``SYMBOL=RATE`` pairs, e.g. ``USDC=0.05``."""
    rates = {}
    for value in values or []:
        symbol, sep, rate = value.partition("=")
        if not sep or not symbol:
            raise ValueError(f"Invalid benchmark {value!r}, expected SYMBOL=RATE")
        try:
            rates[symbol.strip().upper()] = float(rate)
        except ValueError as e:
            raise ValueError(f"Invalid benchmark rate in {value!r}") from e
    return rates


def alert_low_ratings(metrics: List[MarketMetrics], threshold: int) -> None:
    flagged = low_rated_markets(metrics, threshold)
    if not flagged:
        return
    lines = [f"🚨 {len(flagged)} Morpho market(s) rated below {threshold}:"]
    for market in flagged:
        lines.append(
            f"• {market.symbol}/{market.collateral_symbol} rating {market.rating} "
            f"(TVL {format_usd(market.tvl_usd)}) {get_market_url(market)}"
        )
    send_telegram_message("\n".join(lines), PROTOCOL)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Rate Morpho Blue markets for curators")
    parser.add_argument("--limit", type=int, default=500, help="Maximum number of markets to fetch")
    parser.add_argument(
        "--chain-id", type=parse_chain, action="append", dest="chain_ids", help="Chain id or name, repeatable"
    )
    parser.add_argument("--market-id", help="Only rate this market id or unique key")
    parser.add_argument(
        "--benchmark", action="append", default=[], help="Benchmark supply rate as SYMBOL=RATE, repeatable"
    )
    parser.add_argument("--alert-below", type=int, help="Send a Telegram alert for markets rated below this")
    parser.add_argument("--grades", action="store_true", help="Also print letter grades for non-idle markets")
    args = parser.parse_args(argv)

    try:
        benchmark_rates = parse_benchmarks(args.benchmark)
    except ValueError as e:
        parser.error(str(e))

    print("Rating Morpho markets...")
    try:
        metrics = get_market_ratings(
            limit=args.limit,
            market_id=args.market_id,
            benchmark_rates=benchmark_rates,
            chain_ids=args.chain_ids,
        )
    except MarketDataError as e:
        logger.error("Failed to rate Morpho markets: %s", e)
        send_telegram_message(f"🚨 {e} 🚨", PROTOCOL, True)
        sys.exit(1)

    print(format_ratings_report(metrics))
    if args.grades:
        print(format_grades_report(metrics))
    if args.alert_below is not None:
        alert_low_ratings(metrics, args.alert_below)


if __name__ == "__main__":
    main()
