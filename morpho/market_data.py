"""
Market state provider backed by the Morpho GraphQL API.

Fetches Blue markets for the given chains and parses each item into the
``Market`` structure consumed by the rating engine.
"""

from typing import Any, Dict, List, Optional

from morpho.curator_config import CuratorConfig, load_curator_config
from morpho.risk_rating import Market, MarketAsset, MarketState
from utils.chains import Chain
from utils.http import GraphQLError, graphql_request
from utils.logging import get_logger

logger = get_logger("morpho.market_data")

DEFAULT_CHAIN_IDS = [Chain.BASE.chain_id]
LLTV_SCALE = 10**18

MARKETS_QUERY = """
query MorphoMarkets($first: Int!, $chainIds: [Int!]) {
    markets(first: $first, where: { chainId_in: $chainIds }) {
        items {
            id
            uniqueKey
            lltv
            oracleAddress
            morphoBlue {
                chain {
                    id
                }
            }
            loanAsset {
                address
                symbol
                decimals
            }
            collateralAsset {
                address
                symbol
                decimals
            }
            state {
                supplyAssetsUsd
                borrowAssetsUsd
                collateralAssetsUsd
                liquidityAssetsUsd
                sizeUsd
                supplyApy
                borrowApy
                utilization
            }
        }
    }
}
"""


class MarketDataError(Exception):
    """Raised when market data cannot be fetched from the Morpho API."""


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None and number.is_integer() else None


def _asset_from_api(data: Optional[Dict[str, Any]]) -> Optional[MarketAsset]:
    if not data:
        return None
    return MarketAsset(
        symbol=data.get("symbol"),
        address=data.get("address"),
        decimals=_to_int(data.get("decimals")),
    )


def _state_from_api(data: Optional[Dict[str, Any]]) -> Optional[MarketState]:
    if not data:
        return None
    return MarketState(
        supply_assets_usd=_to_float(data.get("supplyAssetsUsd")),
        borrow_assets_usd=_to_float(data.get("borrowAssetsUsd")),
        collateral_assets_usd=_to_float(data.get("collateralAssetsUsd")),
        liquidity_assets_usd=_to_float(data.get("liquidityAssetsUsd")),
        size_usd=_to_float(data.get("sizeUsd")),
        utilization=_to_float(data.get("utilization")),
        supply_apy=_to_float(data.get("supplyApy")),
        borrow_apy=_to_float(data.get("borrowApy")),
    )


def _lltv_from_api(value: Any) -> Optional[float]:
    # The API reports lltv as a WAD-scaled integer string, e.g. "860000000000000000" for 86%
    raw = _to_float(value)
    return raw / LLTV_SCALE if raw is not None and raw > 0 else None


def market_from_api(item: Dict[str, Any]) -> Market:
    """Parse one ``markets.items`` entry. Missing sub-objects become None."""
    chain = (item.get("morphoBlue") or {}).get("chain") or {}
    market_id = item.get("id") or item.get("uniqueKey") or ""
    return Market(
        id=market_id,
        unique_key=item.get("uniqueKey"),
        chain_id=_to_int(chain.get("id")),
        loan_asset=_asset_from_api(item.get("loanAsset")),
        collateral_asset=_asset_from_api(item.get("collateralAsset")),
        state=_state_from_api(item.get("state")),
        lltv=_lltv_from_api(item.get("lltv")),
        oracle_address=item.get("oracleAddress"),
    )


def fetch_morpho_markets(
    limit: int = 200,
    config: Optional[CuratorConfig] = None,
    chain_ids: Optional[List[int]] = None,
) -> List[Market]:
    """Fetch up to ``limit`` markets for ``chain_ids`` (Base by default)."""
    effective_config = config or load_curator_config()
    variables = {"first": limit, "chainIds": chain_ids or DEFAULT_CHAIN_IDS}
    try:
        data = graphql_request(effective_config.morpho_api_url, MARKETS_QUERY, variables)
    except GraphQLError as e:
        raise MarketDataError(f"Problem with fetching Morpho markets: {e}") from e

    items = (data.get("markets") or {}).get("items") or []
    markets = [market_from_api(item) for item in items if item]
    logger.info("Fetched %s Morpho markets for chains %s", len(markets), variables["chainIds"])
    return markets
