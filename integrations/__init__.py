"""
Integrations Module

External service integrations:
- Polymarket API client (markets and price history)
"""

from .polymarket_client import PolymarketClient, get_polymarket_client, parse_market

__all__ = [
    "PolymarketClient",
    "get_polymarket_client",
    "parse_market",
]
