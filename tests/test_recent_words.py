import json

import pytest

from conftest import make_records
from wordsupply.recent_words import (
    RISK_CRITICAL,
    RISK_HIGH,
    RISK_LOW,
    RISK_MODERATE,
    RecentWordsTracker,
)

COOLDOWN = 2 * 60 * 60


@pytest.fixture
def tracker(clock):
    return RecentWordsTracker(None, cooldown_secs=COOLDOWN, clock=clock)


@pytest.mark.unit
def test_recently_used_until_cooldown_passes(tracker, clock):
    tracker.mark_used("Apple", "fruits", "easy")
    assert tracker.is_recently_used("Apple", "fruits", "easy")

    clock.advance(COOLDOWN + 1)
    assert not tracker.is_recently_used("Apple", "fruits", "easy")


@pytest.mark.unit
def test_match_is_case_insensitive(tracker):
    tracker.mark_used("Paris", "places", "medium")
    assert tracker.is_recently_used("paris", "places", "medium")
    assert tracker.is_recently_used("PARIS", "places", "medium")


@pytest.mark.unit
def test_match_requires_same_category_and_difficulty(tracker):
    tracker.mark_used("Paris", "places", "medium")
    assert not tracker.is_recently_used("Paris", "places", "hard")
    assert not tracker.is_recently_used("Paris", "movies", "medium")


@pytest.mark.unit
def test_filter_drops_recent_and_keeps_order(tracker):
    records = make_records(5)
    tracker.mark_used(records[1].text.upper(), "animals", "easy")
    tracker.mark_used(records[3].text, "animals", "easy")

    kept = tracker.filter(records)

    assert [r.id for r in kept] == [records[0].id, records[2].id, records[4].id]


@pytest.mark.unit
def test_entries_are_capped(clock):
    tracker = RecentWordsTracker(None, max_entries=3, clock=clock)
    for word in ["a", "b", "c", "d", "e"]:
        tracker.mark_used(word, "objects", "easy")

    assert [e.text for e in tracker.entries] == ["c", "d", "e"]


@pytest.mark.unit
def test_health_boundary_is_critical(tracker):
    for i in range(96):
        tracker.mark_used(f"word {i}", "animals", "easy")

    health = tracker.health_status(["animals"], "easy", 100)

    assert health.health_percentage == 4
    assert health.blocked_count == 96
    assert health.risk_level == RISK_CRITICAL
    assert health.should_warn is True
    assert health.message


@pytest.mark.unit
@pytest.mark.parametrize("blocked, risk", [(0, RISK_LOW), (69, RISK_LOW), (70, RISK_MODERATE),
                                          (85, RISK_HIGH), (95, RISK_CRITICAL)])
def test_health_risk_levels(tracker, blocked, risk):
    for i in range(blocked):
        tracker.mark_used(f"word {i}", "animals", "easy")
    health = tracker.health_status(["animals"], "easy", 100)
    assert health.risk_level == risk
    assert health.should_warn is (risk != RISK_LOW)


@pytest.mark.unit
def test_health_ignores_other_partitions_and_expired(tracker, clock):
    tracker.mark_used("Lion", "animals", "easy")
    clock.advance(COOLDOWN + 1)
    tracker.mark_used("Tiger", "animals", "easy")
    tracker.mark_used("Pizza", "food", "easy")

    health = tracker.health_status(["animals"], "easy", 10)

    assert health.blocked_count == 1
    assert health.health_percentage == 90


@pytest.mark.unit
def test_health_with_zero_estimate(tracker):
    assert tracker.health_status(["animals"], "easy", 0).health_percentage == 100
    tracker.mark_used("Lion", "animals", "easy")
    status = tracker.health_status(["animals"], "easy", 0)
    assert status.health_percentage == 0
    assert status.risk_level == RISK_CRITICAL


@pytest.mark.unit
def test_sessions(tracker, clock):
    first = tracker.start_session(["animals"], "easy")
    assert first.startswith("session_")
    tracker.mark_used("Lion", "animals", "easy")
    assert [e.text for e in tracker.current_session_words()] == ["Lion"]
    assert tracker.entries[0].session_id == first

    clock.advance(10)
    second = tracker.start_session(["food"], "hard")
    assert second != first
    assert [s.session_id for s in tracker.sessions] == [first]
    assert tracker.current_session_words() == []
    # History survives a new session
    assert tracker.is_recently_used("Lion", "animals", "easy")

    tracker.end_session()
    assert tracker.current_session is None
    assert len(tracker.sessions) == 2


@pytest.mark.unit
def test_session_history_is_capped(clock):
    tracker = RecentWordsTracker(None, max_sessions=2, clock=clock)
    ids = []
    for _ in range(4):
        ids.append(tracker.start_session(["animals"], "easy"))
        tracker.end_session()
        clock.advance(1)
    assert [s.session_id for s in tracker.sessions] == ids[-2:]


@pytest.mark.unit
def test_statistics(tracker, clock):
    tracker.start_session(["animals"], "easy")
    tracker.mark_used("Lion", "animals", "easy")
    clock.advance(60)
    tracker.mark_used("Tiger", "animals", "easy")

    stats = tracker.statistics()

    assert stats["total_recent_words"] == 2
    assert stats["current_session_words"] == 2
    assert stats["total_sessions"] == 0
    assert stats["cooldown_hours"] == 2
    assert stats["oldest_recent_word"] is not None
    assert stats["current_session"]["duration"] == 60
    assert stats["current_session"]["categories"] == ["animals"]


@pytest.mark.unit
def test_cleanup_remove_and_reset(tracker, clock):
    tracker.mark_used("Lion", "animals", "easy")
    clock.advance(COOLDOWN + 1)
    tracker.mark_used("Tiger", "animals", "easy")
    tracker.mark_used("tiger", "animals", "hard")

    assert tracker.cleanup_expired() == 1
    assert tracker.remove_word("TIGER") is True
    assert tracker.entries == []
    assert tracker.remove_word("Tiger") is False

    tracker.start_session(["animals"], "easy")
    tracker.mark_used("Bear", "animals", "easy")
    tracker.reset()
    assert tracker.entries == []
    assert tracker.sessions == []
    assert tracker.current_session is None


@pytest.mark.local
def test_state_survives_restart(tmp_path, clock):
    state = tmp_path / "state" / "recent.json"
    tracker = RecentWordsTracker(str(state), clock=clock)
    session_id = tracker.start_session(["animals"], "easy")
    tracker.mark_used("Lion", "animals", "easy")

    reloaded = RecentWordsTracker(str(state), clock=clock)

    assert reloaded.is_recently_used("lion", "animals", "easy")
    assert reloaded.current_session.session_id == session_id
    data = json.loads(state.read_text(encoding="utf-8"))
    assert data["recent_words"][0]["text"] == "Lion"


@pytest.mark.local
def test_restart_drops_expired_entries(tmp_path, clock):
    state = tmp_path / "recent.json"
    RecentWordsTracker(str(state), clock=clock).mark_used("Lion", "animals", "easy")
    clock.advance(COOLDOWN + 1)

    reloaded = RecentWordsTracker(str(state), clock=clock)

    assert reloaded.entries == []


@pytest.mark.local
def test_corrupt_state_file_starts_empty(tmp_path, clock):
    state = tmp_path / "recent.json"
    state.write_text("{not json", encoding="utf-8")

    tracker = RecentWordsTracker(str(state), clock=clock)

    assert tracker.entries == []
    tracker.mark_used("Lion", "animals", "easy")
    assert json.loads(state.read_text(encoding="utf-8"))["recent_words"][0]["text"] == "Lion"


@pytest.mark.local
def test_mark_many_writes_state_once(tmp_path, clock):
    state = tmp_path / "recent.json"
    tracker = RecentWordsTracker(str(state), clock=clock)
    writes = []
    original_write = tracker._write
    tracker._write = lambda version, data: (writes.append(version), original_write(version, data))

    added = tracker.mark_many([("Lion", "animals", "easy"), ("Tiger", "animals", "easy"),
                               ("Pizza", "food", "easy")])

    assert added == 3
    assert len(writes) == 1
    saved = json.loads(state.read_text(encoding="utf-8"))["recent_words"]
    assert [e["text"] for e in saved] == ["Lion", "Tiger", "Pizza"]


@pytest.mark.local
def test_older_snapshot_never_overwrites_newer(tmp_path, clock):
    state = tmp_path / "recent.json"
    tracker = RecentWordsTracker(str(state), clock=clock)
    tracker.mark_many([("Lion", "animals", "easy")], persist=False)
    stale = tracker._snapshot()
    tracker.mark_many([("Tiger", "animals", "easy")])

    tracker._write(*stale)

    saved = json.loads(state.read_text(encoding="utf-8"))["recent_words"]
    assert [e["text"] for e in saved] == ["Lion", "Tiger"]
