# backend/environment.py
"""
Environment correlation: how posture, location, lighting and sounds relate to
session rating and present-moment attention.
"""
from typing import Any, Dict, List

import pandas as pd

from backend.attention import session_present_percentage
from backend.practice_schema import ENVIRONMENT_FACTORS, PracticeSession, round_half_up, round_one_decimal


def _recommendation(name: str, avg_rating: float, avg_present: int) -> str:
    if avg_rating >= 4 and avg_present >= 70:
        return f"Excellent choice! Continue using {name}"
    if avg_rating < 3 or avg_present < 50:
        return f"Consider trying alternatives to {name}"
    return f"{name} works well for you"


def _environment_frame(sessions: List[PracticeSession]) -> pd.DataFrame:
    rows = []
    for s in sessions:
        if s.environment is None:
            continue
        row = s.environment.to_dict()
        row['rating'] = s.rating if s.rating is not None else 0
        row['present'] = session_present_percentage(s)
        rows.append(row)
    return pd.DataFrame(rows, columns=list(ENVIRONMENT_FACTORS) + ['rating', 'present'])


def analyze_factor(df: pd.DataFrame, factor: str) -> List[Dict[str, Any]]:
    """Group sessions by one factor's value; most-used first, ties in first-seen order."""
    subset = df[df[factor].notna()]
    if subset.empty:
        return []
    grouped = subset.groupby(factor, sort=False).agg(
        count=('rating', 'count'),
        total_rating=('rating', 'sum'),
        total_present=('present', 'sum'),
    )
    grouped = grouped.sort_values('count', ascending=False, kind='stable')

    results = []
    for name, row in grouped.iterrows():
        count = int(row['count'])
        avg_rating = round_one_decimal(float(row['total_rating']) / count)
        avg_present = round_half_up(float(row['total_present']) / count)
        results.append({
            'name': name,
            'count': count,
            'avg_rating': avg_rating,
            'avg_present': avg_present,
            'recommendation': _recommendation(name, avg_rating, avg_present),
        })
    return results


def _best(entries: List[Dict[str, Any]]):
    best = None
    for entry in entries:
        if best is None or _weight(entry) > _weight(best):
            best = entry
    return best


def _weight(entry: Dict[str, Any]) -> float:
    return entry['avg_rating'] * 0.7 + entry['avg_present'] * 0.003


def get_environment_analytics(sessions: List[PracticeSession]) -> Dict[str, Any]:
    """
    Per-factor correlation tables plus the best-scoring value of each factor.

    Args:
        sessions: Practice sessions; those without an environment are ignored

    Returns:
        Dict with posture, location, lighting, sounds (lists of
        {name, count, avg_rating, avg_present, recommendation}) and
        optimal_conditions.
    """
    df = _environment_frame(sessions)
    result: Dict[str, Any] = {factor: analyze_factor(df, factor) for factor in ENVIRONMENT_FACTORS}

    best = {factor: _best(result[factor]) for factor in ENVIRONMENT_FACTORS}
    confidence = 0
    if len(df) > 0:
        best_counts = sum(entry['count'] for entry in best.values() if entry)
        confidence = min(round_half_up(best_counts / (len(df) * 4) * 100), 100)

    optimal = {f'best_{factor}': (entry['name'] if entry else 'Unknown') for factor, entry in best.items()}
    optimal['confidence'] = confidence
    result['optimal_conditions'] = optimal
    return result
