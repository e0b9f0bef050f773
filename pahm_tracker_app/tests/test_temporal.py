from datetime import date, datetime, time, timedelta

from backend.practice_schema import PracticeSession
from backend.temporal import (
    consistency_score,
    current_streak,
    get_temporal_metrics,
    longest_run,
    progress_trend,
)


TODAY = date(2026, 10, 17)


def _session(days_ago=0, rating=None, hour=12, sid=None):
    day = TODAY - timedelta(days=days_ago)
    return PracticeSession(
        id=sid or f"s-{days_ago}-{hour}-{rating}",
        timestamp=datetime.combine(day, time(hour)).astimezone(),
        duration_minutes=20,
        rating=rating,
    )


def test_empty_history():
    assert get_temporal_metrics([], TODAY) == {
        'current_streak': 0,
        'longest_streak': 0,
        'consistency_score': 0,
        'trend': 'stable',
    }


def test_streak_stops_at_first_gap():
    sessions = [_session(0), _session(1), _session(3)]
    metrics = get_temporal_metrics(sessions, TODAY)
    assert metrics['current_streak'] == 2
    assert metrics['longest_streak'] == 2


def test_no_session_today_means_no_streak():
    sessions = [_session(1), _session(2), _session(3)]
    assert current_streak(sessions, TODAY) == 0
    assert longest_run(sessions) == 3


def test_multiple_sessions_same_day_count_once():
    sessions = [_session(0, hour=7), _session(0, hour=19), _session(1, hour=8)]
    assert current_streak(sessions, TODAY) == 2


def test_future_sessions_ignored_for_streak():
    sessions = [_session(-1), _session(0), _session(1)]
    assert current_streak(sessions, TODAY) == 2


def test_longest_streak_found_anywhere_in_history():
    sessions = [_session(0)] + [_session(d) for d in range(10, 14)]
    metrics = get_temporal_metrics(sessions, TODAY)
    assert metrics['current_streak'] == 1
    assert metrics['longest_streak'] == 4


def test_consistency_fifteen_days_is_fifty_percent():
    sessions = [_session(d) for d in range(0, 30, 2)]
    assert len({s.day for s in sessions}) == 15
    assert consistency_score(sessions, TODAY) == 50


def test_consistency_window_is_today_plus_29_days():
    assert consistency_score([_session(29)], TODAY) == 3
    assert consistency_score([_session(30)], TODAY) == 0


def test_trend_needs_ten_sessions():
    sessions = [_session(d, rating=1 if d > 4 else 10) for d in range(9)]
    assert progress_trend(sessions) == 'stable'


def test_trend_improving_and_declining():
    improving = [_session(d, rating=5 if d >= 5 else 8) for d in range(10)]
    declining = [_session(d, rating=8 if d >= 5 else 5) for d in range(10)]
    assert progress_trend(improving) == 'improving'
    assert progress_trend(declining) == 'declining'


def test_trend_threshold_is_strict():
    sessions = [_session(d, rating=6 if d >= 5 else 6.5) for d in range(10)]
    assert progress_trend(sessions) == 'stable'


def test_missing_rating_counts_as_zero_for_trend():
    sessions = [_session(d, rating=7 if d >= 5 else None) for d in range(10)]
    assert progress_trend(sessions) == 'declining'
