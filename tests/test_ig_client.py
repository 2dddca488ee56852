import pytest
import requests
from unittest.mock import MagicMock

from models.errors import BrokerTransportError
from modules.broker.ig_client import DEAL_NOT_FOUND, IGClient

# ------------------------- Fixtures ------------------------- #

def _resp(status=200, payload=None, headers=None):
    r = MagicMock()
    r.status_code = status
    r.json.return_value = payload if payload is not None else {}
    r.headers = headers or {}
    return r


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def client(session, sleep):
    return IGClient(
        api_key="test_api_key",
        username="trader",
        password="secret",
        base_url="https://mock.ig.test/gateway/deal",
        session=session,
        sleep=sleep,
    )


def _sent_json(session, call_index=-1):
    return session.request.call_args_list[call_index].kwargs["json"]

# ------------------------- Session ------------------------- #

def test_authenticate_stores_tokens(client, session):
    session.request.return_value = _resp(
        200, {"currentAccountId": "ABC"}, {"CST": "cst-token", "X-SECURITY-TOKEN": "sec-token"}
    )

    client.authenticate()

    method, url = session.request.call_args.args
    assert method == "POST"
    assert url.endswith("/session")
    assert _sent_json(session) == {"identifier": "trader", "password": "secret"}
    headers = client._headers("1")
    assert headers["CST"] == "cst-token"
    assert headers["X-SECURITY-TOKEN"] == "sec-token"


def test_authenticate_failure_raises(client, session):
    session.request.return_value = _resp(403, {"errorCode": "error.security.invalid-details"})

    with pytest.raises(BrokerTransportError):
        client.authenticate()


def test_network_error_becomes_transport_error(client, session):
    session.request.side_effect = requests.ConnectionError("boom")

    with pytest.raises(BrokerTransportError):
        client.open_positions()


def test_expired_session_is_renewed_once(client, session):
    market = {"instrument": {"epic": "CS.D.CFEGOLD.CEA.IP"}, "snapshot": {}}
    session.request.side_effect = [
        _resp(401, {"errorCode": "error.security.client-token-invalid"}),
        _resp(200, {}, {"CST": "new", "X-SECURITY-TOKEN": "new"}),
        _resp(200, market),
    ]

    assert client.quote("CS.D.CFEGOLD.CEA.IP") == market
    assert session.request.call_count == 3
    assert client.cst == "new"

# ------------------------- Market data ------------------------- #

def test_quote_of_unknown_epic_is_none(client, session):
    session.request.return_value = _resp(404, {"errorCode": "error.service.marketdata.instrument.epic.unavailable"})

    assert client.quote("CS.D.NOPE.IP") is None


def test_search_returns_markets(client, session):
    session.request.return_value = _resp(200, {"markets": [{"epic": "A"}, {"epic": "B"}]})

    assert [m["epic"] for m in client.search("Gold")] == ["A", "B"]
    assert session.request.call_args.kwargs["params"] == {"searchTerm": "Gold"}

# ------------------------- Dealing ------------------------- #

def test_market_order_payload(client, session):
    session.request.return_value = _resp(200, {"dealReference": "REF1"})

    result = client.place_order("CS.D.CFEGOLD.CEA.IP", "buy", 0.5, currency_code="EUR")

    assert result == {"dealReference": "REF1"}
    payload = _sent_json(session)
    assert payload["direction"] == "BUY"
    assert payload["orderType"] == "MARKET"
    assert payload["timeInForce"] == "FILL_OR_KILL"
    assert payload["currencyCode"] == "EUR"
    assert "level" not in payload


def test_limit_order_payload(client, session):
    session.request.return_value = _resp(200, {"dealReference": "REF2"})

    client.place_order("IX.D.SUNGOLD.CEA.IP", "SELL", 1, order_type="LIMIT", level=4000.0)

    payload = _sent_json(session)
    assert payload["orderType"] == "LIMIT"
    assert payload["level"] == 4000.0
    assert payload["timeInForce"] == "EXECUTE_AND_ELIMINATE"


def test_confirm_polls_until_deal_is_known(client, session, sleep):
    accepted = {"dealReference": "REF1", "dealStatus": "ACCEPTED", "dealId": "DEAL1"}
    session.request.side_effect = [
        _resp(404, {"errorCode": DEAL_NOT_FOUND}),
        _resp(404, {"errorCode": DEAL_NOT_FOUND}),
        _resp(200, accepted),
    ]

    assert client.confirm("REF1") == accepted
    assert sleep.call_count == 2


def test_confirm_gives_up_after_bounded_attempts(client, session, sleep):
    session.request.return_value = _resp(404, {"errorCode": DEAL_NOT_FOUND})

    result = client.confirm("REF1")

    assert result["dealStatus"] == "UNKNOWN"
    assert session.request.call_count == 3
    assert sleep.call_count == 2


def test_close_uses_delete_override(client, session):
    session.request.return_value = _resp(200, {"dealReference": "REF3"})

    client.close_order("DEAL1", "BUY", 0.5)

    call = session.request.call_args
    assert call.kwargs["headers"]["_method"] == "DELETE"
    assert call.kwargs["json"]["direction"] == "SELL"
    assert call.kwargs["json"]["dealId"] == "DEAL1"


def test_refused_close_falls_back_to_netting_order(client, session):
    session.request.side_effect = [
        _resp(400, {"errorCode": "validation.null-not-allowed.request"}),
        _resp(200, {"dealReference": "REF4"}),
    ]

    result = client.close_order("DEAL1", "SELL", 2, venue_id="CS.D.GBPJPY.MINI.IP")

    assert result == {"dealReference": "REF4"}
    netting = _sent_json(session)
    assert netting["epic"] == "CS.D.GBPJPY.MINI.IP"
    assert netting["direction"] == "BUY"
    assert netting["forceOpen"] is False


def test_update_levels_reports_http_errors(client, session):
    session.request.return_value = _resp(500, {})

    result = client.update_levels("DEAL1", stop_level=3900.0, limit_level=None)

    assert result["errorCode"] == "http-500"
    assert _sent_json(session)["stopLevel"] == 3900.0
