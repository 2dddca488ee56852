import pytest

from modules.signal_journal import SignalJournal
from modules.signal_parser import parse_signal

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def journal():
    j = SignalJournal(max_size=10)
    for text in [
        "ICH KAUFE GOLD (EK: 4122.39)",
        "ICH VERKAUFE DAX (EK: 24100)",
        "ICH SCHLIEßE GOLD❗861€ GEWINN",
        "ICH SCHLIEßE DAX 120€ VERLUST",
        "Guten Morgen!",
    ]:
        j.add(parse_signal(text))
    return j

# ------------------------- Tests ------------------------- #

def test_recent_is_newest_first(journal):
    recent = journal.recent(2)

    assert [s.type.value for s in recent] == ["UNKNOWN", "POSITION_CLOSE"]


def test_by_instrument(journal):
    assert len(journal.by_instrument("gold")) == 2


def test_stats(journal):
    st = journal.stats()

    assert st["total"] == 5
    assert st["by_type"]["POSITION_OPEN"] == 2
    assert st["by_type"]["UNKNOWN"] == 1
    assert st["by_direction"] == {"BUY": 1, "SELL": 1}
    assert st["by_instrument"]["GOLD"] == 2
    assert st["realized_profit"] == pytest.approx(741.0)


def test_history_is_bounded():
    j = SignalJournal(max_size=3)
    for i in range(5):
        j.add(parse_signal(f"ICH KAUFE GOLD (EK: {4000 + i})"))

    assert len(j) == 3
    assert j.recent(1)[0].entry_price == 4004


def test_summary_report(journal):
    report = journal.summary_report()

    assert "Total messages: 5" in report
    assert "741.00€" in report


def test_empty_journal_stats():
    st = SignalJournal().stats()

    assert st["total"] == 0
    assert st["realized_profit"] == 0.0
