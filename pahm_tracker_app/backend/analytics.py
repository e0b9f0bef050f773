# backend/analytics.py
"""
Analytics entry points.

The module-level functions take record lists and are pure. ``Analytics`` wraps
them for one record store: it loads a user's collections, memoizes the
composed happiness score against the store's last-modified markers, and logs
score history.
"""
from datetime import date
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from backend.attachment import get_attachment_penalty
from backend.attention import get_attention_distribution, session_present_percentage
from backend.environment import get_environment_analytics
from backend.happiness import compute_happiness
from backend.instrumentation import log_analytics_event, timed
from backend.mind_recovery import get_mind_recovery_analytics
from backend.practice_schema import EmotionalNote, PracticeSession, local_day, round_half_up, round_one_decimal
from backend.score_cache import ScoreCache, cache_key
from backend.score_logger import ScoreLogger
from backend.temporal import get_temporal_metrics, range_start

__all__ = [
    'Analytics',
    'compute_happiness',
    'get_attachment_penalty',
    'get_attention_distribution',
    'get_emotion_distribution',
    'get_environment_analytics',
    'get_mind_recovery_analytics',
    'get_practice_duration_data',
    'get_practice_overview',
    'get_progress_trends',
    'get_temporal_metrics',
]

TREND_WINDOW = 10

EMOTION_COLORS = {
    'joy': '#4caf50', 'happy': '#4caf50', 'calm': '#2196f3', 'grateful': '#ff9800',
    'focused': '#9c27b0', 'peaceful': '#00bcd4', 'energized': '#cddc39', 'thoughtful': '#607d8b',
    'content': '#8bc34a', 'neutral': '#9e9e9e', 'stressed': '#ff5722', 'sad': '#3f51b5',
    'angry': '#f44336', 'frustrated': '#ff5722',
}
DEFAULT_EMOTION_COLOR = '#9e9e9e'


def get_practice_overview(
    sessions: List[PracticeSession],
    notes: List[EmotionalNote],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Headline totals for the progress dashboard.

    Returns:
        Dict with total_sessions, total_meditation_sessions,
        total_mind_recovery_sessions, total_practice_minutes,
        total_meditation_minutes, total_mind_recovery_minutes,
        average_session_length, average_quality, average_present_percentage,
        current_streak, longest_streak, emotional_notes_count
    """
    temporal = get_temporal_metrics(sessions, today)
    meditation = [s for s in sessions if not s.is_mind_recovery]
    recovery = [s for s in sessions if s.is_mind_recovery]

    overview = {
        'total_sessions': len(sessions),
        'total_meditation_sessions': len(meditation),
        'total_mind_recovery_sessions': len(recovery),
        'total_practice_minutes': sum(s.duration_minutes for s in sessions),
        'total_meditation_minutes': sum(s.duration_minutes for s in meditation),
        'total_mind_recovery_minutes': sum(s.duration_minutes for s in recovery),
        'average_session_length': 0,
        'average_quality': 0,
        'average_present_percentage': 0,
        'current_streak': temporal['current_streak'],
        'longest_streak': temporal['longest_streak'],
        'emotional_notes_count': len(notes),
    }
    if not sessions:
        return overview

    durations = np.array([s.duration_minutes for s in sessions], dtype=float)
    ratings = np.array([(s.rating if s.rating is not None else 0) for s in sessions], dtype=float)
    present = np.array([session_present_percentage(s) for s in sessions], dtype=float)
    overview['average_session_length'] = round_half_up(float(durations.mean()))
    overview['average_quality'] = round_one_decimal(float(ratings.mean()))
    overview['average_present_percentage'] = round_half_up(float(present.mean()))
    return overview


def get_emotion_distribution(
    notes: List[EmotionalNote],
    time_range: str = 'month',
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Emotion tags of notes in the time range, most frequent first (ties in first-seen order)."""
    start = range_start(time_range, today)
    emotions = [n.emotion for n in notes if n.emotion and local_day(n.timestamp) >= start]
    if not emotions:
        return []
    counts = pd.DataFrame({'emotion': emotions}).groupby('emotion', sort=False).size()
    counts = counts.sort_values(ascending=False, kind='stable')
    return [
        {'emotion': emotion, 'count': int(count), 'color': EMOTION_COLORS.get(emotion, DEFAULT_EMOTION_COLOR)}
        for emotion, count in counts.items()
    ]


def get_practice_duration_data(
    sessions: List[PracticeSession],
    time_range: str = 'month',
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Daily practice minutes and mean quality for the time range.

    Returns:
        List of {date, duration, quality} per local day with practice, oldest
        first. A missing rating counts as 0 toward quality.
    """
    start = range_start(time_range, today)
    rows = [
        {'date': s.day, 'duration': s.duration_minutes, 'rating': s.rating if s.rating is not None else 0}
        for s in sessions if s.day >= start
    ]
    if not rows:
        return []
    daily = pd.DataFrame(rows).groupby('date').agg(
        duration=('duration', 'sum'),
        total_rating=('rating', 'sum'),
        session_count=('rating', 'count'),
    ).sort_index()
    return [
        {
            'date': day.isoformat(),
            'duration': int(row['duration']),
            'quality': round_one_decimal(float(row['total_rating']) / int(row['session_count'])),
        }
        for day, row in daily.iterrows()
    ]


def _direction(recent: float, older: float) -> str:
    if recent > older:
        return 'improving'
    if recent < older:
        return 'declining'
    return 'stable'


def get_progress_trends(sessions: List[PracticeSession]) -> Optional[Dict[str, Any]]:
    """Compare the latest 10 sessions against the 10 before them.

    Returns None with fewer than 5 sessions, or when nothing precedes the
    latest 10.
    """
    if len(sessions) < 5:
        return None
    ordered = sorted(sessions, key=lambda s: s.timestamp)
    recent = ordered[-TREND_WINDOW:]
    older = ordered[-TREND_WINDOW * 2:-TREND_WINDOW]
    if not older:
        return None

    def means(window: List[PracticeSession]):
        quality = np.mean([(s.rating if s.rating is not None else 0) for s in window])
        present = np.mean([session_present_percentage(s) for s in window])
        return float(quality), float(present)

    recent_quality, recent_present = means(recent)
    older_quality, older_present = means(older)
    return {
        'quality_trend': _direction(recent_quality, older_quality),
        'present_trend': _direction(recent_present, older_present),
        'quality_change': round_one_decimal(recent_quality - older_quality),
        'present_change': round_one_decimal(recent_present - older_present),
        'recent_avg_quality': round_one_decimal(recent_quality),
        'recent_avg_present': round_half_up(recent_present),
    }


class Analytics:
    """Store-backed analytics for one user at a time."""

    def __init__(self, store=None, cache: Optional[ScoreCache] = None,
                 score_logger: Optional[ScoreLogger] = None):
        if store is None:
            from backend.record_store import PracticeRecordStore
            store = PracticeRecordStore()
        self.store = store
        self.cache = cache if cache is not None else ScoreCache()
        self.score_logger = score_logger if score_logger is not None else ScoreLogger()
        self._last_levels: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Per-analyzer views
    # ------------------------------------------------------------------

    def get_temporal_metrics(self, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        with timed('temporal_metrics', user_id=user_id):
            return get_temporal_metrics(self.store.get_sessions(user_id), today)

    def get_attention_distribution(self, user_id: str) -> Optional[Dict[str, Any]]:
        with timed('attention_distribution', user_id=user_id):
            return get_attention_distribution(self.store.get_sessions(user_id))

    def get_environment_analytics(self, user_id: str) -> Dict[str, Any]:
        with timed('environment_analytics', user_id=user_id):
            return get_environment_analytics(self.store.get_sessions(user_id))

    def get_mind_recovery_analytics(self, user_id: str) -> Dict[str, Any]:
        with timed('mind_recovery_analytics', user_id=user_id):
            return get_mind_recovery_analytics(self.store.get_sessions(user_id))

    def get_attachment_penalty(self, user_id: str) -> Dict[str, Any]:
        return get_attachment_penalty(self.store.get_self_assessment(user_id))

    def get_practice_overview(self, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        with timed('practice_overview', user_id=user_id):
            return get_practice_overview(self.store.get_sessions(user_id), self.store.get_notes(user_id), today)

    def get_progress_trends(self, user_id: str) -> Optional[Dict[str, Any]]:
        return get_progress_trends(self.store.get_sessions(user_id))

    def get_emotion_distribution(self, user_id: str, time_range: str = 'month',
                                 today: Optional[date] = None) -> List[Dict[str, Any]]:
        return get_emotion_distribution(self.store.get_notes(user_id), time_range, today)

    def get_practice_duration_data(self, user_id: str, time_range: str = 'month',
                                   today: Optional[date] = None) -> List[Dict[str, Any]]:
        with timed('practice_duration', user_id=user_id):
            return get_practice_duration_data(self.store.get_sessions(user_id), time_range, today)

    # ------------------------------------------------------------------
    # Composite score
    # ------------------------------------------------------------------

    def compute_happiness(self, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """Composed happiness score, served from cache while no collection has changed."""
        today = today or date.today()
        markers = self.store.get_last_modified(user_id)
        key = cache_key(user_id, markers, today)

        cached = self.cache.get(key, user_id)
        if cached is not None:
            return cached

        with timed('compute_happiness', user_id=user_id):
            result = compute_happiness(
                self.store.get_questionnaire(user_id),
                self.store.get_self_assessment(user_id),
                self.store.get_sessions(user_id),
                today,
            )
        self.cache.put(key, result)

        self.score_logger.log_score_computed(user_id, result, markers)
        previous_level = self._last_levels.get(user_id)
        if previous_level is not None and previous_level != result['level']:
            self.score_logger.log_level_change(user_id, previous_level, result['level'], result['score'])
            log_analytics_event('level_changed', user_id=user_id, level=result['level'])
        self._last_levels[user_id] = result['level']
        return result

    def get_dashboard(self, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """Every analytics view for one user in a single call."""
        today = today or date.today()
        return {
            'happiness': self.compute_happiness(user_id, today),
            'temporal': self.get_temporal_metrics(user_id, today),
            'attention': self.get_attention_distribution(user_id),
            'environment': self.get_environment_analytics(user_id),
            'mind_recovery': self.get_mind_recovery_analytics(user_id),
            'attachment': self.get_attachment_penalty(user_id),
            'overview': self.get_practice_overview(user_id, today),
            'progress_trends': self.get_progress_trends(user_id),
            'emotion_distribution': self.get_emotion_distribution(user_id, today=today),
            'practice_duration': self.get_practice_duration_data(user_id, today=today),
        }
