"""
Poloniex Public API Module.

Blocking REST snapshots (tickers, order books, trade history) to pair with the push stream.
"""

from poloniex.publicapi.client import PublicClient
from poloniex.publicapi.models import OrderBook, OrderLevel, TickerSnapshot, Trade

__all__ = ["PublicClient", "OrderBook", "OrderLevel", "TickerSnapshot", "Trade"]
