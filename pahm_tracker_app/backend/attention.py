# backend/attention.py
"""
Attention distribution over the 3x3 PAHM grid (time orientation x emotional tone).
"""
from typing import Any, Dict, List, Optional

from backend.practice_schema import (
    DEFAULT_PRESENT_BASELINE,
    PAHM_FIELDS,
    STAGE_PRESENT_BASELINES,
    TIME_AXIS,
    TONE_AXIS,
    PracticeSession,
    round_half_up,
)


PAHM_TREND_WINDOW = 10
PAHM_TREND_THRESHOLD = 0.05


def stage_baseline(stage_level: Optional[int]) -> int:
    return STAGE_PRESENT_BASELINES.get(stage_level, DEFAULT_PRESENT_BASELINE)


def pahm_present_percentage(session: PracticeSession) -> Optional[int]:
    """Present-row share of a session's PAHM observations.

    A session that tracked PAHM but never tapped an observation gets the
    baseline for its stage. Returns None when the session has no PAHM counts.
    """
    counts = session.pahm_counts
    if counts is None:
        return None
    total = counts.total()
    if total == 0:
        return stage_baseline(session.stage_level)
    return round_half_up(counts.axis_total('present') / total * 100)


def session_present_percentage(session: PracticeSession, default: float = 0) -> float:
    """Explicit present percentage, else the PAHM-derived value, else ``default``."""
    if session.present_percentage is not None:
        return session.present_percentage
    derived = pahm_present_percentage(session)
    return derived if derived is not None else default


def _axis_shares(session: PracticeSession):
    counts = session.pahm_counts
    total = counts.total()
    present = counts.axis_total('present') / total
    neutral = sum(getattr(counts, f"{t}_neutral") for t in TIME_AXIS) / total
    return present, neutral


def _share_trend(recent: List[float], earlier: List[float]) -> str:
    if not recent or not earlier:
        return 'stable'
    difference = sum(recent) / len(recent) - sum(earlier) / len(earlier)
    if abs(difference) < PAHM_TREND_THRESHOLD:
        return 'stable'
    return 'improving' if difference > 0 else 'declining'


def pahm_trends(tracked: List[PracticeSession], present_percentage: int, neutral_percentage: int) -> Dict[str, Any]:
    """Per-session present and neutral shares, latest 10 observed sessions against the 10 before.

    Sessions whose counts are all zero carry no shares and are skipped.
    """
    observed = sorted((s for s in tracked if s.pahm_counts.total() > 0), key=lambda s: s.timestamp)
    shares = [_axis_shares(s) for s in observed]
    recent = shares[-PAHM_TREND_WINDOW:]
    earlier = shares[-PAHM_TREND_WINDOW * 2:-PAHM_TREND_WINDOW]
    return {
        'present_trend': _share_trend([p for p, _ in recent], [p for p, _ in earlier]),
        'neutral_trend': _share_trend([n for _, n in recent], [n for _, n in earlier]),
        'overall_progress': round_half_up((present_percentage + neutral_percentage) / 2),
    }


def _session_type_summary(sessions: List[PracticeSession]) -> Dict[str, Any]:
    if not sessions:
        return {'sessions': 0, 'avg_present': 0}
    present = [session_present_percentage(s) for s in sessions]
    return {
        'sessions': len(sessions),
        'avg_present': round_half_up(sum(present) / len(present)),
    }


def get_attention_distribution(sessions: List[PracticeSession]) -> Optional[Dict[str, Any]]:
    """
    Fold PAHM counts across sessions into totals and axis distributions.

    Args:
        sessions: Practice sessions; those without pahm_counts are ignored

    Returns:
        None when nothing was ever observed, otherwise a dict with total_pahm,
        total_observations, time_distribution, emotional_distribution,
        present_percentage, neutral_percentage, sessions_analyzed and the
        per-session-type split (meditation_pahm, mind_recovery_pahm) and trends.
    """
    tracked = [s for s in sessions if s.pahm_counts is not None]
    if not tracked:
        return None

    total_pahm = {name: 0 for name in PAHM_FIELDS}
    for s in tracked:
        for name in PAHM_FIELDS:
            total_pahm[name] += getattr(s.pahm_counts, name)

    total_observations = sum(total_pahm.values())
    # Tracked-but-empty is still "no data", not 0%.
    if total_observations == 0:
        return None

    time_distribution = {
        t: sum(total_pahm[f"{t}_{tone}"] for tone in TONE_AXIS) for t in TIME_AXIS
    }
    emotional_distribution = {
        tone: sum(total_pahm[f"{t}_{tone}"] for t in TIME_AXIS) for tone in TONE_AXIS
    }

    present_percentage = round_half_up(time_distribution['present'] / total_observations * 100)
    neutral_percentage = round_half_up(emotional_distribution['neutral'] / total_observations * 100)
    return {
        'total_pahm': total_pahm,
        'total_observations': total_observations,
        'time_distribution': time_distribution,
        'emotional_distribution': emotional_distribution,
        'present_percentage': present_percentage,
        'neutral_percentage': neutral_percentage,
        'sessions_analyzed': len(tracked),
        'meditation_pahm': _session_type_summary([s for s in tracked if not s.is_mind_recovery]),
        'mind_recovery_pahm': _session_type_summary([s for s in tracked if s.is_mind_recovery]),
        'trends': pahm_trends(tracked, present_percentage, neutral_percentage),
    }
