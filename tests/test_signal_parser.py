import pytest

from models.signal import SignalType
from modules.signal_parser import parse_amount, parse_signal, scale_price, to_float

# ------------------------- Open ------------------------- #

def test_open_buy_with_entry():
    sig = parse_signal("ICH KAUFE GOLD (EK: 4122.39)")

    assert sig.type is SignalType.POSITION_OPEN
    assert sig.instrument == "GOLD"
    assert sig.direction == "BUY"
    assert sig.entry_price == pytest.approx(4122.39)


def test_open_sell_with_comma_decimal():
    sig = parse_signal("ICH VERKAUFE EURUSD (EK: 1,0850)")

    assert sig.direction == "SELL"
    assert sig.instrument == "EURUSD"
    assert sig.entry_price == pytest.approx(1.085)


def test_put_leg_overrides_verb_direction():
    sig = parse_signal("ICH KAUFE DAX PUT 24000 (EK: 24100)")

    assert sig.type is SignalType.POSITION_OPEN
    assert sig.direction == "SELL"
    assert sig.option_type == "PUT"
    assert sig.strike_price == 24000


def test_call_leg_is_a_buy():
    sig = parse_signal("ICH VERKAUFE NASDAQ CALL 21000 (EK: 20950)")

    assert sig.direction == "BUY"
    assert sig.option_type == "CALL"


def test_open_with_embedded_take_profit():
    sig = parse_signal("ICH KAUFE DAX (EK: 24000) UND SETZE TP AUF 24500")

    assert sig.type is SignalType.POSITION_OPEN
    assert sig.entry_price == 24000
    assert sig.take_profit == 24500


def test_open_with_stop_without_parentheses():
    sig = parse_signal("ICH VERKAUFE BITCOIN EK: 83931 UND SETZE SL AUF 85000")

    assert sig.type is SignalType.POSITION_OPEN
    assert sig.direction == "SELL"
    assert sig.entry_price == 83931
    assert sig.stop_loss == 85000


def test_open_with_levels_on_following_lines():
    sig = parse_signal("ICH KAUFE SILBER (EK: 48.20)\nSL: 47.10\nTP: 50")

    assert sig.stop_loss == pytest.approx(47.10)
    assert sig.take_profit == 50


def test_oil_prices_are_scaled_to_venue_cents():
    assert parse_signal("ICH KAUFE BRENT (EK: 73.50)").entry_price == pytest.approx(7350.0)
    assert parse_signal("ICH KAUFE OIL (EK: 65.2)").entry_price == pytest.approx(6520.0)
    assert parse_signal("ICH KAUFE WTI (EK: 6890)").entry_price == pytest.approx(6890.0)


@pytest.mark.parametrize("name", ["UKOIL", "USOIL", "CRUDE", "Öl"])
def test_oil_aliases_are_scaled_too(name):
    sig = parse_signal(f"ICH VERKAUFE {name} (EK: 68.90)")

    assert sig.type is SignalType.POSITION_OPEN
    assert sig.entry_price == pytest.approx(6890.0)


# ------------------------- Close ------------------------- #

def test_close_with_profit():
    sig = parse_signal("ICH SCHLIEßE GOLD❗861€ GEWINN")

    assert sig.type is SignalType.POSITION_CLOSE
    assert sig.instrument == "GOLD"
    assert sig.profit == 861
    assert sig.close_result == "GEWINN"


def test_close_with_grouped_loss_amount():
    sig = parse_signal("ICH SCHLIESSE DAX mit 1.250 € VERLUST")

    assert sig.type is SignalType.POSITION_CLOSE
    assert sig.profit == -1250
    assert sig.close_result == "VERLUST"


def test_plain_close_is_manual():
    sig = parse_signal("ICH SCHLIEßE GOLD")

    assert sig.type is SignalType.POSITION_CLOSE
    assert sig.profit is None
    assert sig.close_result == "MANUAL_CLOSE"


# ------------------------- Level updates ------------------------- #

@pytest.mark.parametrize("text", [
    "Ich setze den SL bei GOLD auf 4100",
    "SL GOLD auf 4100",
    "GOLD SL: 4100",
    "GOLD SL AUF 4100",
])
def test_stop_loss_update_phrasings(text):
    sig = parse_signal(text)

    assert sig.type is SignalType.SL_UPDATE
    assert sig.instrument == "GOLD"
    assert sig.stop_loss == 4100


def test_take_profit_update():
    sig = parse_signal("Ich setze den TP bei NASDAQ auf 21000,5")

    assert sig.type is SignalType.TP_UPDATE
    assert sig.instrument == "NASDAQ"
    assert sig.take_profit == pytest.approx(21000.5)


# ------------------------- LIVE TREND ------------------------- #

def test_live_trend_block():
    text = (
        "🔴 LIVE TREND 🔴\n"
        "BTC/USDT\n"
        "Richtung: LONG\n"
        "Entry: 65000\n"
        "Target: 68000\n"
        "SL: 63000\n"
        "Timeframe: 4H\n"
    )
    sig = parse_signal(text)

    assert sig.type is SignalType.POSITION_OPEN
    assert sig.instrument == "BTC/USDT"
    assert sig.direction == "BUY"
    assert sig.entry_price == 65000
    assert sig.take_profit == 68000
    assert sig.stop_loss == 63000
    assert sig.timeframe == "4H"


def test_live_trend_direction_line_before_stop_is_not_a_level_update():
    sig = parse_signal("🚦LIVE TREND🚦\nEUR/USD\nLONG\nSL: 1.0800\nTP: 1.0950")

    assert sig.type is SignalType.POSITION_OPEN
    assert sig.instrument == "EUR/USD"
    assert sig.direction == "BUY"
    assert sig.stop_loss == pytest.approx(1.08)
    assert sig.take_profit == pytest.approx(1.095)


def test_short_level_update_only_matches_first_line():
    assert parse_signal("Update:\nGOLD SL: 4100").type is SignalType.UNKNOWN


def test_live_trend_without_direction_is_unknown():
    sig = parse_signal("LIVE TREND\nETH/USDT\nEntry: 3000")

    assert sig.type is SignalType.UNKNOWN


# ------------------------- Unknown / robustness ------------------------- #

@pytest.mark.parametrize("text", [None, "", "   ", "Guten Morgen zusammen!", "ICH KAUFE GOLD (EK: 0)"])
def test_unrecognised_text_is_unknown(text):
    sig = parse_signal(text)

    assert sig.type is SignalType.UNKNOWN
    assert not sig.is_actionable


def test_parsing_is_deterministic():
    text = "ICH VERKAUFE GBPJPY (EK: 205.80)"

    assert parse_signal(text).data() == parse_signal(text).data()


def test_raw_text_is_kept():
    text = "ICH KAUFE GOLD (EK: 4122.39)"

    assert parse_signal(text).raw_text == text


# ------------------------- Helpers ------------------------- #

def test_number_helpers():
    assert to_float("4122,39") == pytest.approx(4122.39)
    assert to_float(None) is None
    assert parse_amount("3.343") == 3343
    assert parse_amount("1.234,50") == pytest.approx(1234.5)
    assert parse_amount("861") == 861
    assert scale_price("GOLD", 73.5) == 73.5
    assert scale_price("BRENT", 7350) == 7350
