import pytest

from modules.market_data import MarketDataGate
from modules.position_sizer import PositionSizer
from modules.position_tracker import PositionTracker
from modules.security_gate import SecurityGate
from modules.signal_parser import parse_signal
from modules.trade_retry import (
    AttemptOutcome,
    ExecutionStage,
    RetryContext,
    TradeRetryController,
    next_stage,
    relevance_score,
)

from conftest import market_payload

PRIMARY = "CS.D.CFEGOLD.CEA.IP"
WEEKEND = "IX.D.SUNGOLD.CEA.IP"

S = ExecutionStage
O = AttemptOutcome

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def tracker():
    return PositionTracker()


@pytest.fixture
def controller(broker, fx, tracker):
    market_data = MarketDataGate(broker)
    sizer = PositionSizer(fx)
    gate = SecurityGate(sizer, market_data, broker, exemptions=["BITCOIN"])
    return TradeRetryController(broker, market_data, sizer, gate, tracker=tracker)


@pytest.fixture
def gold(resolver):
    return resolver.resolve("GOLD")


@pytest.fixture
def buy_gold():
    return parse_signal("ICH KAUFE GOLD (EK: 4000)")


def gold_market(epic=PRIMARY, status="TRADEABLE", name="Gold"):
    bid, offer = (4000.0, 4000.5) if status == "TRADEABLE" else (None, None)
    return market_payload(epic, bid=bid, offer=offer, status=status, contract_size=1, name=name)


def search_row(epic, name, status="TRADEABLE"):
    return {"epic": epic, "instrumentName": name, "marketStatus": status, "bid": 1.0, "offer": 1.1}

# ------------------------- Transition table ------------------------- #

@pytest.mark.parametrize("stage, outcome, ctx, expected", [
    (S.PRIMARY, O.SUCCESS, RetryContext(True), S.SUCCESS),
    (S.PRIMARY, O.NOT_TRADABLE, RetryContext(True), S.FALLBACK),
    (S.PRIMARY, O.MARKET_DATA_UNAVAILABLE, RetryContext(False), S.SEARCH_ALTERNATIVES),
    (S.FALLBACK, O.REJECTED, RetryContext(True), S.SEARCH_ALTERNATIVES),
    (S.SEARCH_ALTERNATIVES, O.REJECTED, RetryContext(True, 2), S.SEARCH_ALTERNATIVES),
    (S.SEARCH_ALTERNATIVES, O.NO_CANDIDATES, RetryContext(True, 0), S.EXHAUSTED),
    (S.PRIMARY, O.INSUFFICIENT_FUNDS, RetryContext(True), S.EXHAUSTED),
    (S.SEARCH_ALTERNATIVES, O.INSUFFICIENT_FUNDS, RetryContext(True, 3), S.EXHAUSTED),
    (S.PRIMARY, O.SIZING_ABORTED, RetryContext(True), S.EXHAUSTED),
    (S.FALLBACK, O.RISK_REJECTED, RetryContext(True), S.EXHAUSTED),
    (S.SEARCH_ALTERNATIVES, O.RISK_REJECTED, RetryContext(False, 1), S.SEARCH_ALTERNATIVES),
    (S.SUCCESS, O.REJECTED, RetryContext(True), S.SUCCESS),
    (S.EXHAUSTED, O.SUCCESS, RetryContext(True), S.EXHAUSTED),
])
def test_next_stage(stage, outcome, ctx, expected):
    assert next_stage(stage, outcome, ctx) is expected


def test_relevance_score_prefers_plain_cash_listing():
    cash = {"epic": "UD.D.TSLA.CASH.IP", "instrumentName": "Tesla", "instrumentType": "SHARES"}
    leveraged = {"epic": "UD.D.TSLA3L.IP", "instrumentName": "Tesla 3x Leverage ETP"}

    assert relevance_score(cash, "Tesla") > relevance_score(leveraged, "Tesla")

# ------------------------- Alternatives ------------------------- #

def test_find_alternatives_filters_and_limits(controller, broker):
    rows = [search_row(f"ALT.{i}", f"Gold {i}") for i in range(8)]
    rows += [
        search_row("ALT.SHORT", "Gold Short"),
        search_row("ALT.CLOSED", "Gold Closed", status="CLOSED"),
        search_row(PRIMARY, "Gold"),
    ]
    broker.search_results["Gold"] = rows

    picked = [m["epic"] for m in controller.find_alternatives("Gold", tried=[PRIMARY])]

    assert len(picked) == 5
    assert PRIMARY not in picked
    assert "ALT.SHORT" not in picked
    assert "ALT.CLOSED" not in picked

# ------------------------- Cascade ------------------------- #

def test_primary_success(controller, broker, tracker, gold, buy_gold):
    broker.markets[PRIMARY] = gold_market()

    result = controller.execute(buy_gold, gold, 100)

    assert result.success
    assert result.stage == "PRIMARY"
    assert result.venue_id == PRIMARY
    assert result.sizing.contracts == pytest.approx(0.5)
    assert len(result.attempts) == 1
    assert broker.orders[0]["order_type"] == "MARKET"
    assert tracker.get(result.deal_id).instrument == "GOLD"


def test_closed_primary_falls_back_to_weekend_venue_with_limit_order(controller, broker, gold, buy_gold):
    broker.markets[PRIMARY] = gold_market(status="CLOSED")
    broker.markets[WEEKEND] = gold_market(WEEKEND, name="Weekend Gold")

    result = controller.execute(buy_gold, gold, 100)

    assert result.success
    assert [a.stage for a in result.attempts] == ["PRIMARY", "FALLBACK"]
    assert result.attempts[0].outcome == "NOT_TRADABLE"
    order = broker.orders[0]
    assert order["epic"] == WEEKEND
    assert order["order_type"] == "LIMIT"
    assert order["level"] == 4000.5


def test_unresolved_primary_uses_search_replacement(controller, broker, gold, buy_gold):
    broker.search_results["Gold"] = [{"epic": "CS.D.GOLDNEW.CASH.IP", "marketStatus": "TRADEABLE"}]
    broker.markets["CS.D.GOLDNEW.CASH.IP"] = gold_market("CS.D.GOLDNEW.CASH.IP")

    result = controller.execute(buy_gold, gold, 100)

    assert result.success
    assert result.stage == "PRIMARY"
    assert result.venue_id == "CS.D.GOLDNEW.CASH.IP"


def test_trail_records_every_attempt_until_exhausted(controller, broker, gold, buy_gold):
    broker.search_results["Gold"] = [search_row("ALT.1", "Gold A"), search_row("ALT.2", "Gold B")]

    result = controller.execute(buy_gold, gold, 100)

    assert not result.success
    assert result.stage == "EXHAUSTED"
    assert [a.stage for a in result.attempts] == [
        "PRIMARY", "FALLBACK", "SEARCH_ALTERNATIVES", "SEARCH_ALTERNATIVES",
    ]
    assert all(a.outcome == "MARKET_DATA_UNAVAILABLE" for a in result.attempts)
    assert broker.orders == []


def test_insufficient_funds_stops_immediately(controller, broker, gold, buy_gold):
    broker.markets[PRIMARY] = gold_market()
    broker.rejections[PRIMARY] = "INSUFFICIENT_FUNDS"

    result = controller.execute(buy_gold, gold, 100)

    assert not result.success
    assert len(result.attempts) == 1
    assert result.attempts[0].outcome == "INSUFFICIENT_FUNDS"
    assert broker.searches == []


def test_rejected_deal_moves_on_to_fallback(controller, broker, gold, buy_gold):
    broker.markets[PRIMARY] = gold_market()
    broker.markets[WEEKEND] = gold_market(WEEKEND, name="Weekend Gold")
    broker.rejections[PRIMARY] = "MARKET_CLOSED_WITH_EDITS"

    result = controller.execute(buy_gold, gold, 100)

    assert result.success
    assert result.venue_id == WEEKEND
    assert result.attempts[0].failure_reason == "MARKET_CLOSED_WITH_EDITS"


def test_sizing_abort_is_terminal_outside_search(controller, broker, resolver):
    eurusd = resolver.resolve("EURUSD")
    broker.markets[eurusd.venue_id] = market_payload(
        eurusd.venue_id, bid=108.5, offer=108.52, currency="USD", margin=3.33,
    )
    signal = parse_signal("ICH KAUFE EURUSD (EK: 1.085)")

    result = controller.execute(signal, eurusd, 100, price_bounds=(0.5, 2.0))

    assert not result.success
    assert len(result.attempts) == 1
    assert result.attempts[0].outcome == "SIZING_ABORTED"
    assert broker.orders == []
