# backend/attachment.py
"""
Attachment penalty model for the six sense-door self-assessment.
"""
from typing import Any, Dict, Optional

from backend.practice_schema import ATTACHMENT_CATEGORIES, SelfAssessment


SOME_PENALTY = 25
STRONG_PENALTY = 75

# (minimum non-attachment percentage, bonus), first match wins
NON_ATTACHMENT_BONUS_TIERS = ((80, 120), (60, 80), (40, 40), (20, 20))


def non_attachment_bonus(percentage: float) -> int:
    for threshold, bonus in NON_ATTACHMENT_BONUS_TIERS:
        if percentage >= threshold:
            return bonus
    return 0


def attachment_level(none_count: int, some_count: int, strong_count: int, total: int) -> str:
    if strong_count >= 4:
        return 'very-high'
    if strong_count >= 2 or some_count >= 4:
        return 'high'
    if strong_count >= 1 or some_count >= 2:
        return 'medium'
    if some_count >= 1:
        return 'low'
    if total > 0 and none_count == total:
        return 'non-attached'
    return 'very-low'


def get_attachment_penalty(self_assessment: Optional[SelfAssessment]) -> Dict[str, Any]:
    """
    Score a self-assessment into a penalty, a non-attachment bonus and a level.

    Categories without a recorded level are skipped entirely. A missing
    assessment is reported as level 'no-data', never as non-attached.

    Returns:
        Dict with penalty_points, non_attachment_bonus, level,
        non_attachment_percentage, none_count, some_count, strong_count and
        total_categories.
    """
    if self_assessment is None:
        return {
            'penalty_points': 0,
            'non_attachment_bonus': 0,
            'level': 'no-data',
            'non_attachment_percentage': 0,
            'none_count': 0,
            'some_count': 0,
            'strong_count': 0,
            'total_categories': 0,
        }

    counts = {'none': 0, 'some': 0, 'strong': 0}
    for category in ATTACHMENT_CATEGORIES:
        level = self_assessment.level_of(category)
        if level in counts:
            counts[level] += 1
    total = sum(counts.values())

    percentage = counts['none'] / total * 100 if total else 0
    return {
        'penalty_points': counts['some'] * SOME_PENALTY + counts['strong'] * STRONG_PENALTY,
        'non_attachment_bonus': non_attachment_bonus(percentage),
        'level': attachment_level(counts['none'], counts['some'], counts['strong'], total),
        'non_attachment_percentage': percentage,
        'none_count': counts['none'],
        'some_count': counts['some'],
        'strong_count': counts['strong'],
        'total_categories': total,
    }
