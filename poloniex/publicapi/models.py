"""Pydantic models for public REST responses."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TRADE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _frozen_flag(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() not in ("", "0")
    return value


class TickerSnapshot(BaseModel):
    """One market's entry in returnTicker."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int = Field(default=0, description="market id")
    last: float
    lowest_ask: float = Field(alias="lowestAsk")
    highest_bid: float = Field(alias="highestBid")
    percent_change: float = Field(alias="percentChange")
    base_volume: float = Field(alias="baseVolume")
    quote_volume: float = Field(alias="quoteVolume")
    is_frozen: bool = Field(default=False, alias="isFrozen")
    high_24hr: float = Field(default=0.0, alias="high24hr")
    low_24hr: float = Field(default=0.0, alias="low24hr")

    @field_validator("is_frozen", mode="before")
    @classmethod
    def coerce_frozen(cls, value: Any) -> Any:
        return _frozen_flag(value)


class OrderLevel(BaseModel):
    """One price level: [rate, quantity]."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    rate: float
    quantity: float

    @model_validator(mode="before")
    @classmethod
    def _from_pair(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError(f"price level must be [rate, quantity], got {data!r}")
            return {"rate": data[0], "quantity": data[1]}
        return data


class OrderBook(BaseModel):
    """returnOrderBook for a single market."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    asks: list[OrderLevel] = Field(default_factory=list)
    bids: list[OrderLevel] = Field(default_factory=list)
    is_frozen: bool = Field(default=False, alias="isFrozen")
    seq: int

    @field_validator("is_frozen", mode="before")
    @classmethod
    def coerce_frozen(cls, value: Any) -> Any:
        return _frozen_flag(value)

    @property
    def best_ask(self) -> OrderLevel | None:
        return self.asks[0] if self.asks else None

    @property
    def best_bid(self) -> OrderLevel | None:
        return self.bids[0] if self.bids else None


class Trade(BaseModel):
    """One entry of returnTradeHistory. `date` is Unix seconds (the API sends UTC text)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    global_trade_id: int = Field(alias="globalTradeID")
    trade_id: int = Field(alias="tradeID")
    date: int
    side: Literal["buy", "sell"] = Field(alias="type")
    rate: float
    amount: float
    total: float

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            parsed = datetime.strptime(value, TRADE_DATE_FORMAT)
            return int(parsed.replace(tzinfo=timezone.utc).timestamp())
        return value
