# backend/happiness.py
"""
Happiness score composer.

Combines questionnaire answers, the attachment self-assessment and practice
history into one score ("happiness points") with a level label and a
per-term breakdown. Every term is computed independently and summed:

    base + questionnaire + pahm_mastery + session_quality + emotional_stability
    + mind_recovery + environment + consistency + non_attachment - attachment_penalty

The final score never drops below 50.
"""
import math
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from backend.attachment import get_attachment_penalty
from backend.attention import session_present_percentage
from backend.practice_schema import PracticeSession, Questionnaire, SelfAssessment, round_half_up
from backend.temporal import current_streak


SCORE_FLOOR = 50
NEWCOMER_SCORE = 50

LEVELS = (
    (1200, 'Master'),
    (1000, 'Expert'),
    (800, 'Advanced'),
    (600, 'Intermediate'),
    (400, 'Beginner'),
)

BREAKDOWN_KEYS = (
    'base_happiness',
    'questionnaire_bonus',
    'attachment_penalty',
    'non_attachment_bonus',
    'pahm_mastery_bonus',
    'session_quality_bonus',
    'emotional_stability_bonus',
    'mind_recovery_bonus',
    'environment_bonus',
    'consistency_bonus',
)

ENVIRONMENT_TYPE_BONUS = {
    'dedicated_space': 25,
    'quiet_room': 18,
    'nature': 20,
    'outdoor': 15,
}

RECENT_SESSION_WINDOW = 10


def _at_least(value: float, tiers: Sequence[Tuple[float, int]]) -> int:
    """First tier whose threshold value reaches; tiers are ordered high to low."""
    for threshold, points in tiers:
        if value >= threshold:
            return points
    return 0


def _at_most(value: float, tiers: Sequence[Tuple[float, int]]) -> int:
    """First tier whose ceiling value stays under; tiers are ordered low to high."""
    for threshold, points in tiers:
        if value <= threshold:
            return points
    return 0


def _answer(questionnaire: Questionnaire, name: str, default: float) -> float:
    value = getattr(questionnaire, name)
    return default if value is None else value


def _share(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0


def level_for_score(score: int) -> str:
    for threshold, label in LEVELS:
        if score >= threshold:
            return label
    return 'Newcomer'


def base_happiness(questionnaire: Optional[Questionnaire]) -> int:
    if questionnaire is None:
        return 150
    experience = _answer(questionnaire, 'experience_level', 0)
    sleep = _answer(questionnaire, 'sleep_pattern', 5)
    frequency = _answer(questionnaire, 'practice_frequency', 3)

    base = 200
    base += _at_least(experience, ((8, 100), (6, 60), (4, 30), (2, 15)))
    base += round_half_up((sleep - 5) * 8)
    base += len(questionnaire.goals) * 10
    base += frequency * 5
    return max(150, round_half_up(base))


def questionnaire_bonus(questionnaire: Optional[Questionnaire]) -> int:
    if questionnaire is None:
        return 0
    bonus = 0
    bonus += _at_least(_answer(questionnaire, 'experience_level', 0), ((8, 40), (6, 25), (4, 15)))
    bonus += _at_least(_answer(questionnaire, 'sleep_pattern', 0), ((9, 30), (7, 20), (5, 10)))
    bonus += _at_least(_answer(questionnaire, 'practice_frequency', 0), ((6, 25), (4, 15), (2, 8)))
    bonus += _at_most(_answer(questionnaire, 'stress_level', 5), ((2, 20), (4, 10)))
    return bonus


def pahm_mastery_bonus(questionnaire: Optional[Questionnaire], sessions: List[PracticeSession]) -> int:
    if questionnaire is None and not sessions:
        return 0
    bonus = 0
    if questionnaire is not None:
        bonus += _at_least(_answer(questionnaire, 'experience_level', 0), ((8, 50), (6, 30), (4, 15)))
    if sessions:
        bonus += _at_least(len(sessions), ((100, 40), (50, 25), (20, 15), (5, 8)))
        tracked = sum(1 for s in sessions if s.pahm_counts is not None)
        bonus += _at_least(_share(tracked, len(sessions)), ((80, 30), (60, 20), (40, 10)))
    return bonus


def session_quality_bonus(sessions: List[PracticeSession]) -> int:
    if not sessions:
        return 0
    recent = sorted(sessions, key=lambda s: s.timestamp)[-RECENT_SESSION_WINDOW:]
    avg_rating = sum((s.rating if s.rating is not None else 7) for s in recent) / len(recent)
    avg_present = sum(session_present_percentage(s, default=70) for s in recent) / len(recent)
    return (
        _at_least(avg_rating, ((9, 30), (8, 20), (7, 10)))
        + _at_least(avg_present, ((90, 25), (80, 15), (70, 8)))
    )


def emotional_stability_bonus(questionnaire: Optional[Questionnaire]) -> int:
    if questionnaire is None:
        return 0
    return (
        _at_most(_answer(questionnaire, 'stress_level', 5), ((2, 35), (3, 25), (4, 15)))
        + _at_least(_answer(questionnaire, 'mood_stability', 5), ((8, 30), (6, 20), (4, 10)))
        + _at_least(_answer(questionnaire, 'emotional_awareness', 5), ((8, 25), (6, 15), (4, 8)))
    )


def mind_recovery_bonus(questionnaire: Optional[Questionnaire], sessions: List[PracticeSession]) -> int:
    """Only users who have actually done a mind-recovery session earn this bonus."""
    recovery = [s for s in sessions if s.is_mind_recovery]
    if not recovery:
        return 0

    bonus = 0
    if questionnaire is not None:
        bonus += _at_least(_answer(questionnaire, 'sleep_pattern', 5), ((9, 40), (7, 25), (5, 12)))
        bonus += _at_least(_answer(questionnaire, 'restfulness', 5), ((8, 30), (6, 18), (4, 8)))

    bonus += _at_least(_share(len(recovery), len(sessions)), ((30, 25), (20, 15), (10, 8)))

    with_metrics = [s.recovery_metrics for s in recovery if s.recovery_metrics is not None]
    if with_metrics:
        avg_reduction = sum((m.stress_reduction or 0) for m in with_metrics) / len(with_metrics)
        bonus += _at_least(avg_reduction, ((8, 20), (6, 12), (4, 6)))
    return bonus


def environment_bonus(questionnaire: Optional[Questionnaire], sessions: List[PracticeSession]) -> int:
    bonus = 0
    if questionnaire is not None:
        environment = questionnaire.practice_environment or 'mixed'
        bonus += ENVIRONMENT_TYPE_BONUS.get(environment, 0)
        bonus += _at_most(_answer(questionnaire, 'distraction_level', 5), ((2, 20), (3, 12), (4, 6)))
        bonus += _at_least(_answer(questionnaire, 'support_system', 5), ((8, 25), (6, 15), (4, 8)))

    if sessions:
        with_env = [s for s in sessions if s.environment is not None]
        bonus += _at_least(_share(len(with_env), len(sessions)), ((80, 15), (60, 10), (40, 5)))
        outdoor = sum(
            1 for s in with_env
            if s.environment.location
            and ('outdoor' in s.environment.location.lower() or 'nature' in s.environment.location.lower())
        )
        if outdoor >= 5:
            bonus += 10
    return bonus


def weekly_consistency(sessions: List[PracticeSession]) -> float:
    """Distinct ISO weeks with practice relative to ceil(sessions / 7)."""
    if not sessions:
        return 0
    expected_weeks = math.ceil(len(sessions) / 7)
    weeks = {tuple(s.day.isocalendar())[:2] for s in sessions}
    return len(weeks) / expected_weeks


def consistency_bonus(sessions: List[PracticeSession], today: Optional[date] = None) -> int:
    if not sessions:
        return 0
    streak = current_streak(sessions, today)
    return (
        _at_least(streak, ((30, 60), (14, 40), (7, 25), (3, 12)))
        + _at_least(weekly_consistency(sessions), ((0.8, 30), (0.6, 20), (0.4, 10)))
    )


def compute_happiness(
    questionnaire: Optional[Questionnaire],
    self_assessment: Optional[SelfAssessment],
    sessions: List[PracticeSession],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Compose the happiness score.

    Args:
        questionnaire: Canonical onboarding answers, or None
        self_assessment: Attachment self-assessment, or None
        sessions: All practice sessions of the user
        today: Local date used for the streak (defaults to the current date)

    Returns:
        Dict with score, level and breakdown (every term, including zeros)
    """
    if questionnaire is None and self_assessment is None and not sessions:
        breakdown = {key: 0 for key in BREAKDOWN_KEYS}
        breakdown['base_happiness'] = NEWCOMER_SCORE
        return {'score': NEWCOMER_SCORE, 'level': 'Newcomer', 'breakdown': breakdown}

    attachment = get_attachment_penalty(self_assessment)
    breakdown = {
        'base_happiness': base_happiness(questionnaire),
        'questionnaire_bonus': questionnaire_bonus(questionnaire),
        'attachment_penalty': attachment['penalty_points'],
        'non_attachment_bonus': attachment['non_attachment_bonus'],
        'pahm_mastery_bonus': pahm_mastery_bonus(questionnaire, sessions),
        'session_quality_bonus': session_quality_bonus(sessions),
        'emotional_stability_bonus': emotional_stability_bonus(questionnaire),
        'mind_recovery_bonus': mind_recovery_bonus(questionnaire, sessions),
        'environment_bonus': environment_bonus(questionnaire, sessions),
        'consistency_bonus': consistency_bonus(sessions, today),
    }

    total = sum(v for k, v in breakdown.items() if k != 'attachment_penalty') - breakdown['attachment_penalty']
    score = max(SCORE_FLOOR, total)
    return {'score': score, 'level': level_for_score(score), 'breakdown': breakdown}
