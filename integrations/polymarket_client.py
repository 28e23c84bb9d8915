"""
Polymarket Client

Market snapshots from the Gamma API and price history from the CLOB API.
Every public method degrades to None / [] on network or payload errors.
"""

import json
import logging
from typing import Any, List, Optional

import requests

from causal_sim.models import Market, PricePoint

logger = logging.getLogger(__name__)


def _json_list(value: Any) -> List:
    """Gamma encodes some list fields as JSON strings."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return []
        return decoded if isinstance(decoded, list) else []
    return []


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_market(data: dict) -> Optional[Market]:
    """
    Convert a Gamma market payload to a Market.

    Returns:
        Market or None if the payload lacks an id or has mismatched outcomes
    """
    market_id = data.get("id") or data.get("conditionId")
    if not market_id:
        return None

    outcomes = [str(o) for o in _json_list(data.get("outcomes"))]
    prices = [_to_float(p) for p in _json_list(data.get("outcomePrices"))]

    if len(outcomes) != len(prices):
        logger.debug(f"Skipping market {market_id}: {len(outcomes)} outcomes, {len(prices)} prices")
        return None

    return Market(
        market_id=str(market_id),
        question=data.get("question", ""),
        outcomes=outcomes,
        outcome_prices=prices,
        volume=_to_float(data.get("volume", data.get("volumeNum"))),
        liquidity=_to_float(data.get("liquidity", data.get("liquidityNum"))),
        category=data.get("category"),
        clob_token_ids=[str(t) for t in _json_list(data.get("clobTokenIds"))],
        slug=data.get("slug"),
        end_date=data.get("endDate"),
        active=bool(data.get("active", True)),
        closed=bool(data.get("closed", False))
    )


class PolymarketClient:
    """
    Client for fetching data from Polymarket.

    Uses the public Gamma (markets) and CLOB (prices-history) APIs.
    """

    CLOB_URL = "https://clob.polymarket.com"
    GAMMA_URL = "https://gamma-api.polymarket.com"

    PAGE_SIZE = 500
    MAX_PAGES = 20

    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None):
        """
        Initialize Polymarket client.

        Args:
            timeout: Request timeout in seconds
            session: Pre-configured session (tests)
        """
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": "PolymarketCausalSim/0.1",
            "Accept": "application/json"
        })

    def _get_json(self, url: str, params: Optional[dict] = None) -> Any:
        response = self._session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def get_market(self, market_id: str) -> Optional[Market]:
        """
        Get one market by id.

        Returns:
            Market or None if not found
        """
        try:
            data = self._get_json(f"{self.GAMMA_URL}/markets/{market_id}")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching market {market_id}: {e}")
            return None

        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            logger.warning(f"No market found for id: {market_id}")
            return None

        return parse_market(data)

    def get_markets(self, limit: int = 10_000, active: bool = True) -> List[Market]:
        """
        Fetch markets with offset pagination.

        Closed markets and markets with neither volume nor liquidity are
        dropped when active is True.

        Args:
            limit: Maximum number of markets returned
            active: Only open markets

        Returns:
            List of Market (possibly partial if a later page fails)
        """
        raw: List[dict] = []
        offset = 0

        for page in range(self.MAX_PAGES):
            if len(raw) >= limit:
                break

            params = {"limit": self.PAGE_SIZE, "offset": offset}
            if active:
                params["active"] = "true"
                params["closed"] = "false"

            try:
                batch = self._get_json(f"{self.GAMMA_URL}/markets", params=params)
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.error(f"Error fetching markets at offset {offset}: {e}")
                break

            if not isinstance(batch, list) or not batch:
                break

            raw.extend(batch)
            logger.debug(f"Page {page + 1}: {len(batch)} markets (total {len(raw)})")
            offset += self.PAGE_SIZE

        markets = []
        for item in raw[:limit]:
            market = parse_market(item) if isinstance(item, dict) else None
            if market is None:
                continue
            if active and (market.closed or (market.volume <= 0 and market.liquidity <= 0)):
                continue
            markets.append(market)

        logger.info(f"Fetched {len(raw)} markets, kept {len(markets)}")
        return markets

    def get_price_history(
        self,
        token_id: str,
        interval: str = "1w",
        fidelity: Optional[int] = None
    ) -> List[PricePoint]:
        """
        Fetch historical prices for a CLOB token.

        Args:
            token_id: CLOB token id
            interval: History window (1h, 6h, 1d, 1w, 1m, max)
            fidelity: Resolution in minutes

        Returns:
            Price points in API order; [] on any error
        """
        params = {"market": token_id, "interval": interval}
        if fidelity:
            params["fidelity"] = fidelity

        try:
            data = self._get_json(f"{self.CLOB_URL}/prices-history", params=params)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching price history for {token_id}: {e}")
            return []

        history = data.get("history", []) if isinstance(data, dict) else []

        points = []
        for item in history:
            try:
                points.append(PricePoint(timestamp=int(item["t"]), price=float(item["p"])))
            except (KeyError, TypeError, ValueError):
                continue

        logger.debug(f"Price history for {token_id}: {len(points)} points")
        return points


# Module-level singleton
_client: Optional[PolymarketClient] = None


def get_polymarket_client(timeout: float = 10.0) -> PolymarketClient:
    """Get Polymarket client singleton."""
    global _client
    if _client is None:
        _client = PolymarketClient(timeout=timeout)
    return _client
