# backend/temporal.py
"""
Streak, consistency and trend metrics over practice session timestamps.
"""
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

import pandas as pd

from backend.practice_schema import PracticeSession, round_half_up


CONSISTENCY_WINDOW_DAYS = 30
TREND_WINDOW = 5
TREND_THRESHOLD = 0.5

# time range -> pandas offset back from today
TIME_RANGES = {
    'week': pd.DateOffset(days=7),
    'month': pd.DateOffset(months=1),
    'quarter': pd.DateOffset(months=3),
    'year': pd.DateOffset(years=1),
}


def _practice_days(sessions: Iterable[PracticeSession]) -> List[date]:
    """Distinct local calendar days with at least one session, newest first."""
    return sorted({s.day for s in sessions}, reverse=True)


def current_streak(sessions: Iterable[PracticeSession], today: Optional[date] = None) -> int:
    """Consecutive practice days ending at (and including) today.

    Days after today are ignored. No session today means a streak of 0.
    """
    today = today or date.today()
    days = [d for d in _practice_days(sessions) if d <= today]
    streak = 0
    expected = today
    for day in days:
        if day != expected:
            break
        streak += 1
        expected = day - timedelta(days=1)
    return streak


def longest_run(sessions: Iterable[PracticeSession]) -> int:
    """Longest run of consecutive practice days anywhere in the history."""
    days = _practice_days(sessions)
    if not days:
        return 0
    longest = run = 1
    for newer, older in zip(days, days[1:]):
        if newer - older == timedelta(days=1):
            run += 1
            longest = max(longest, run)
        else:
            run = 1
    return longest


def consistency_score(sessions: Iterable[PracticeSession], today: Optional[date] = None) -> int:
    """Percentage of the trailing 30 days (today included) with any practice."""
    today = today or date.today()
    window_start = today - timedelta(days=CONSISTENCY_WINDOW_DAYS - 1)
    active = {d for d in _practice_days(sessions) if window_start <= d <= today}
    return round_half_up(len(active) / CONSISTENCY_WINDOW_DAYS * 100)


def progress_trend(sessions: Iterable[PracticeSession]) -> str:
    """Compare mean rating of the latest 5 sessions against the 5 before them.

    Returns 'improving', 'declining' or 'stable'. Fewer than 10 sessions is
    always 'stable'; a missing rating counts as 0.
    """
    ordered = sorted(sessions, key=lambda s: s.timestamp)
    if len(ordered) < TREND_WINDOW * 2:
        return 'stable'

    def mean_rating(window: List[PracticeSession]) -> float:
        return sum((s.rating if s.rating is not None else 0) for s in window) / len(window)

    recent = mean_rating(ordered[-TREND_WINDOW:])
    previous = mean_rating(ordered[-TREND_WINDOW * 2:-TREND_WINDOW])
    if recent > previous + TREND_THRESHOLD:
        return 'improving'
    if recent < previous - TREND_THRESHOLD:
        return 'declining'
    return 'stable'


def get_temporal_metrics(sessions: List[PracticeSession], today: Optional[date] = None) -> Dict[str, object]:
    """
    Streak, consistency and trend summary for one user's sessions.

    Args:
        sessions: All practice sessions of one user
        today: Local date to evaluate against (defaults to the current date)

    Returns:
        Dict with current_streak, longest_streak, consistency_score, trend
    """
    if not sessions:
        return {
            'current_streak': 0,
            'longest_streak': 0,
            'consistency_score': 0,
            'trend': 'stable',
        }
    today = today or date.today()
    streak = current_streak(sessions, today)
    return {
        'current_streak': streak,
        'longest_streak': max(longest_run(sessions), streak),
        'consistency_score': consistency_score(sessions, today),
        'trend': progress_trend(sessions),
    }


def range_start(time_range: str = 'month', today: Optional[date] = None) -> date:
    """First local day included in a dashboard time range; unknown ranges mean 'month'."""
    today = today or date.today()
    offset = TIME_RANGES.get(time_range, TIME_RANGES['month'])
    return (pd.Timestamp(today) - offset).date()
