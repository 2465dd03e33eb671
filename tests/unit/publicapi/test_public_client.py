"""
Unit tests for the public REST client.
"""

from unittest.mock import MagicMock

import pytest
import requests

from poloniex.config import PublicConfig
from poloniex.errors import PublicApiError
from poloniex.publicapi.client import PublicClient
from poloniex.publicapi.models import OrderLevel

ORDER_BOOK_BODY = {
    "asks": [["0.00001315", 36937.09233522], ["0.00001332", 8365.874]],
    "bids": [["0.00001311", 6006.00485372]],
    "isFrozen": "0",
    "seq": 28233022,
}

TICKER_BODY = {
    "BTC_BBR": {
        "id": 6,
        "last": "0.00069501",
        "lowestAsk": "0.00074346",
        "highestBid": "0.00069501",
        "percentChange": "-0.00742634",
        "baseVolume": "8.63286802",
        "quoteVolume": "11983.47150109",
        "isFrozen": "0",
        "high24hr": "0.00107920",
        "low24hr": "0.00045422",
    }
}

TRADE_HISTORY_BODY = [
    {
        "globalTradeID": 25129732,
        "tradeID": 6325758,
        "date": "2014-02-10 04:23:23",
        "type": "sell",
        "rate": "0.00001311",
        "amount": "3606.62190000",
        "total": "0.04728271",
    },
    {
        "globalTradeID": 25129628,
        "tradeID": 6325741,
        "date": "2014-02-10 04:19:54",
        "type": "buy",
        "rate": "0.00001311",
        "amount": "149.50000000",
        "total": "0.00195994",
    },
]


def _response(status: int = 200, body=None, json_error: bool = False) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    if json_error:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = body
    return resp


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class TestPublicClient:
    """Tests for PublicClient."""

    @pytest.fixture
    def session(self) -> MagicMock:
        """Create a mock requests session."""
        session = MagicMock(spec=requests.Session)
        session.headers = {}
        return session

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def client(self, session: MagicMock, clock: FakeClock) -> PublicClient:
        """Create a client over the mock session."""
        return PublicClient(
            PublicConfig(max_requests_per_s=4),
            session=session,
            clock=clock,
            sleep=clock.sleep,
        )

    def test_accept_header(self, client: PublicClient, session: MagicMock) -> None:
        """Test the client asks for JSON."""
        assert session.headers["Accept"] == "application/json"

    def test_get_order_book(self, client: PublicClient, session: MagicMock) -> None:
        """Test an order book snapshot is parsed with its sequence number."""
        session.get.return_value = _response(body=ORDER_BOOK_BODY)

        book = client.get_order_book("btc_nxt", depth=10)

        _, kwargs = session.get.call_args
        assert kwargs["params"] == {
            "command": "returnOrderBook",
            "currencyPair": "BTC_NXT",
            "depth": "10",
        }
        assert kwargs["timeout"] == 10.0
        assert book.seq == 28233022
        assert book.is_frozen is False
        assert book.asks[0] == OrderLevel(rate=0.00001315, quantity=36937.09233522)
        assert book.best_bid == OrderLevel(rate=0.00001311, quantity=6006.00485372)
        assert len(book.asks) == 2

    def test_get_tickers(self, client: PublicClient, session: MagicMock) -> None:
        """Test the ticker snapshot is keyed by pair and coerced to numbers."""
        session.get.return_value = _response(body=TICKER_BODY)

        tickers = client.get_tickers()

        ticker = tickers["BTC_BBR"]
        assert ticker.id == 6
        assert ticker.last == 0.00069501
        assert ticker.lowest_ask == 0.00074346
        assert ticker.percent_change == -0.00742634
        assert ticker.is_frozen is False
        assert ticker.high_24hr == 0.00107920

    def test_frozen_market(self, client: PublicClient, session: MagicMock) -> None:
        """Test isFrozen "1" decodes to True."""
        session.get.return_value = _response(body={**ORDER_BOOK_BODY, "isFrozen": "1"})

        assert client.get_order_book("BTC_NXT").is_frozen is True

    def test_error_body(self, client: PublicClient, session: MagicMock) -> None:
        """Test an {"error": ...} body raises PublicApiError."""
        session.get.return_value = _response(body={"error": "Invalid currency pair."})

        with pytest.raises(PublicApiError) as exc_info:
            client.get_order_book("BTC_NOPE")

        assert "Invalid currency pair." in str(exc_info.value)
        assert exc_info.value.command == "returnOrderBook"

    def test_bad_status(self, client: PublicClient, session: MagicMock) -> None:
        """Test a non-200 status raises PublicApiError carrying the status."""
        session.get.return_value = _response(status=503)

        with pytest.raises(PublicApiError) as exc_info:
            client.get_tickers()

        assert exc_info.value.status == 503

    def test_invalid_json(self, client: PublicClient, session: MagicMock) -> None:
        """Test a body that is not JSON raises PublicApiError."""
        session.get.return_value = _response(json_error=True)

        with pytest.raises(PublicApiError):
            client.get_tickers()

    def test_invalid_payload(self, client: PublicClient, session: MagicMock) -> None:
        """Test a body of the wrong shape raises PublicApiError."""
        session.get.return_value = _response(body={"asks": [["0.1"]], "bids": [], "seq": 1})

        with pytest.raises(PublicApiError):
            client.get_order_book("BTC_NXT")

    def test_transport_error(self, client: PublicClient, session: MagicMock) -> None:
        """Test requests exceptions are wrapped."""
        session.get.side_effect = requests.ConnectionError("DNS failure")

        with pytest.raises(PublicApiError):
            client.get_tickers()

    def test_invalid_depth(self, client: PublicClient) -> None:
        """Test depth must be positive."""
        with pytest.raises(ValueError):
            client.get_order_book("BTC_NXT", depth=0)

    def test_get_trade_history(self, client: PublicClient, session: MagicMock) -> None:
        """Test trades are parsed with UTC dates as Unix seconds."""
        session.get.return_value = _response(body=TRADE_HISTORY_BODY)

        trades = client.get_trade_history("btc_nxt")

        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"command": "returnTradeHistory", "currencyPair": "BTC_NXT"}
        assert len(trades) == 2
        trade = trades[0]
        assert trade.global_trade_id == 25129732
        assert trade.trade_id == 6325758
        assert trade.date == 1392006203
        assert trade.side == "sell"
        assert trade.rate == 0.00001311
        assert trade.total == 0.04728271
        assert trades[1].side == "buy"

    def test_get_trade_history_range(self, client: PublicClient, session: MagicMock) -> None:
        """Test start and end are sent as whole Unix seconds."""
        session.get.return_value = _response(body=[])

        assert client.get_trade_history("BTC_NXT", start=1410158341.5, end=1410499372) == []

        _, kwargs = session.get.call_args
        assert kwargs["params"]["start"] == "1410158341"
        assert kwargs["params"]["end"] == "1410499372"

    def test_get_trade_history_bad_shape(self, client: PublicClient, session: MagicMock) -> None:
        """Test a non-list body or an unknown side raises PublicApiError."""
        session.get.return_value = _response(body={"BTC_NXT": []})
        with pytest.raises(PublicApiError):
            client.get_trade_history("BTC_NXT")

        bad = [{**TRADE_HISTORY_BODY[0], "type": "hold"}]
        session.get.return_value = _response(body=bad)
        with pytest.raises(PublicApiError) as exc_info:
            client.get_trade_history("BTC_NXT")

        assert exc_info.value.command == "returnTradeHistory"

    def test_throttle_spaces_requests(
        self, client: PublicClient, session: MagicMock, clock: FakeClock
    ) -> None:
        """Test consecutive calls are at least 1/max_requests_per_s apart."""
        session.get.return_value = _response(body=ORDER_BOOK_BODY)
        call_times: list[float] = []
        session.get.side_effect = lambda *a, **kw: (
            call_times.append(clock.now) or _response(body=ORDER_BOOK_BODY)
        )

        for _ in range(3):
            client.get_order_book("BTC_NXT")

        assert call_times == [0.0, 0.25, 0.5]

    def test_context_manager_closes_session(self, session: MagicMock) -> None:
        """Test leaving the context closes the HTTP session."""
        with PublicClient(session=session):
            pass

        session.close.assert_called_once()
