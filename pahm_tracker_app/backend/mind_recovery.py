# backend/mind_recovery.py
"""
Mind-recovery effectiveness: usage and ratings by context (when the short
practice happened) and purpose (why it was used), plus time-of-day patterns
and plain-language recommendations.

Sessions without a context (or purpose) still count in the totals but are
left out of the context (or purpose) groups.
"""
from typing import Any, Dict, List, Optional

import pandas as pd

from backend.attention import session_present_percentage
from backend.practice_schema import RECOVERY_METRIC_FIELDS, PracticeSession, round_half_up, round_one_decimal


# (name, first hour, end hour); evening wraps past midnight
TIME_OF_DAY = (
    ('morning', 6, 12),
    ('afternoon', 12, 18),
)
SHORT_SESSION_MINUTES = 10


def display_label(tag: str) -> str:
    """'morning-recharge' -> 'Morning Recharge'"""
    return ' '.join(word[:1].upper() + word[1:] for word in tag.split('-'))


def effectiveness(mean_rating: float) -> int:
    """Mean rating on the 1-10 scale as a 0-100 percentage."""
    return round_half_up(mean_rating / 10 * 100)


def time_of_day(hour: int) -> str:
    for name, start, end in TIME_OF_DAY:
        if start <= hour < end:
            return name
    return 'evening'


def _recovery_frame(sessions: List[PracticeSession]) -> pd.DataFrame:
    rows = [
        {
            'context': s.mind_recovery_context,
            'purpose': s.mind_recovery_purpose,
            'time_of_day': time_of_day(s.timestamp.astimezone().hour),
            'rating': s.rating if s.rating is not None else 0,
            'duration': s.duration_minutes,
            'present': session_present_percentage(s),
        }
        for s in sessions
    ]
    return pd.DataFrame(rows, columns=['context', 'purpose', 'time_of_day', 'rating', 'duration', 'present'])


def _group_stats(df: pd.DataFrame, column: str) -> List[Dict[str, Any]]:
    tagged = df[df[column].notna()]
    if tagged.empty:
        return []
    grouped = tagged.groupby(column, sort=False).agg(
        count=('rating', 'count'),
        mean_rating=('rating', 'mean'),
        mean_duration=('duration', 'mean'),
        mean_present=('present', 'mean'),
    )
    grouped = grouped.sort_values('count', ascending=False, kind='stable')
    return [
        {
            'key': key,
            'label': display_label(key),
            'count': int(row['count']),
            'avg_rating': round_one_decimal(float(row['mean_rating'])),
            'avg_duration': round_half_up(float(row['mean_duration'])),
            'avg_present': round_half_up(float(row['mean_present'])),
            'effectiveness': effectiveness(float(row['mean_rating'])),
            '_mean_rating': float(row['mean_rating']),
        }
        for key, row in grouped.iterrows()
    ]


def _highest_rated(groups: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # Ties on the unrounded mean go to the lexicographically smallest key.
    if not groups:
        return None
    return min(groups, key=lambda g: (-g['_mean_rating'], g['key']))


def _time_patterns(df: pd.DataFrame) -> Dict[str, Any]:
    """Effectiveness per time of day; the earliest period wins ties."""
    means = df.groupby('time_of_day')['rating'].mean()
    scores = {
        name: (effectiveness(float(means[name])) if name in means.index else 0)
        for name in ('morning', 'afternoon', 'evening')
    }
    optimal = max(('morning', 'afternoon', 'evening'), key=lambda name: scores[name])
    return {
        'morning_effectiveness': scores['morning'],
        'afternoon_effectiveness': scores['afternoon'],
        'evening_effectiveness': scores['evening'],
        'optimal_time': optimal.capitalize(),
    }


def _recommendations(best_context: Optional[Dict[str, Any]], best_purpose: Optional[Dict[str, Any]],
                     optimal_time: str, avg_duration: float) -> List[str]:
    recommendations = []
    if best_context:
        recommendations.append(
            f"{best_context['label']} sessions work best for you ({best_context['effectiveness']}% effectiveness)"
        )
    if best_purpose:
        recommendations.append(f"Use mind recovery primarily for {best_purpose['key'].replace('-', ' ')}")
    recommendations.append(f"Your optimal time for mind recovery is {optimal_time.lower()}")
    if avg_duration < SHORT_SESSION_MINUTES:
        recommendations.append('Consider longer sessions (10+ minutes) for better results')
    return recommendations


def _avg_recovery_metrics(sessions: List[PracticeSession]) -> Optional[Dict[str, float]]:
    with_metrics = [s.recovery_metrics for s in sessions if s.recovery_metrics is not None]
    if not with_metrics:
        return None
    averages = {}
    for name in RECOVERY_METRIC_FIELDS:
        total = sum((getattr(m, name) or 0) for m in with_metrics)
        averages[name] = round_one_decimal(total / len(with_metrics))
    return averages


def _strip_internal(group: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if group is None:
        return None
    return {k: v for k, v in group.items() if not k.startswith('_')}


def get_mind_recovery_analytics(sessions: List[PracticeSession]) -> Dict[str, Any]:
    """
    Aggregate mind-recovery sessions.

    Args:
        sessions: All practice sessions of one user (meditation ones are only counted)

    Returns:
        Dict with total_sessions, total_meditation_sessions, total_minutes,
        avg_rating, avg_duration, avg_present, context_stats, purpose_stats,
        most_used_context, highest_rated_context, avg_recovery_metrics,
        time_patterns and recommendations.
    """
    recovery = [s for s in sessions if s.is_mind_recovery]
    meditation_count = len(sessions) - len(recovery)

    if not recovery:
        return {
            'total_sessions': 0,
            'total_meditation_sessions': meditation_count,
            'total_minutes': 0,
            'avg_rating': 0,
            'avg_duration': 0,
            'avg_present': 0,
            'context_stats': [],
            'purpose_stats': [],
            'most_used_context': None,
            'highest_rated_context': None,
            'avg_recovery_metrics': None,
            'time_patterns': {
                'morning_effectiveness': 0,
                'afternoon_effectiveness': 0,
                'evening_effectiveness': 0,
                'optimal_time': 'Unknown',
            },
            'recommendations': [],
        }

    df = _recovery_frame(recovery)
    contexts = _group_stats(df, 'context')
    purposes = _group_stats(df, 'purpose')
    total_minutes = int(df['duration'].sum())
    avg_duration = total_minutes / len(recovery)
    time_patterns = _time_patterns(df)

    highest_context = _highest_rated(contexts)
    return {
        'total_sessions': len(recovery),
        'total_meditation_sessions': meditation_count,
        'total_minutes': total_minutes,
        'avg_rating': round_one_decimal(float(df['rating'].sum()) / len(recovery)),
        'avg_duration': round_half_up(avg_duration),
        'avg_present': round_half_up(float(df['present'].sum()) / len(recovery)),
        'context_stats': [_strip_internal(g) for g in contexts],
        'purpose_stats': [_strip_internal(g) for g in purposes],
        'most_used_context': _strip_internal(contexts[0]) if contexts else None,
        'highest_rated_context': _strip_internal(highest_context),
        'avg_recovery_metrics': _avg_recovery_metrics(recovery),
        'time_patterns': time_patterns,
        'recommendations': _recommendations(
            highest_context, _highest_rated(purposes), time_patterns['optimal_time'], avg_duration,
        ),
    }
