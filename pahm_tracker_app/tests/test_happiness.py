from datetime import date, datetime, time, timedelta

from backend.happiness import (
    BREAKDOWN_KEYS,
    base_happiness,
    compute_happiness,
    consistency_bonus,
    environment_bonus,
    level_for_score,
    mind_recovery_bonus,
    session_quality_bonus,
    weekly_consistency,
)
from backend.practice_schema import (
    ATTACHMENT_CATEGORIES,
    CategoryAssessment,
    Environment,
    PahmCounts,
    PracticeSession,
    Questionnaire,
    RecoveryMetrics,
    SelfAssessment,
)


TODAY = date(2026, 10, 17)


def _session(days_ago=0, hour=12, **kwargs):
    kwargs.setdefault('duration_minutes', 20)
    return PracticeSession(
        id=f"s-{days_ago}-{hour}",
        timestamp=datetime.combine(TODAY - timedelta(days=days_ago), time(hour)).astimezone(),
        **kwargs,
    )


def _assessment(level):
    return SelfAssessment(categories={name: CategoryAssessment(level=level) for name in ATTACHMENT_CATEGORIES})


def test_new_user_gets_newcomer_floor():
    result = compute_happiness(None, None, [])
    assert result['score'] == 50
    assert result['level'] == 'Newcomer'
    assert result['breakdown']['base_happiness'] == 50
    assert set(result['breakdown']) == set(BREAKDOWN_KEYS)
    assert all(v == 0 for k, v in result['breakdown'].items() if k != 'base_happiness')


def test_self_assessment_only():
    result = compute_happiness(None, _assessment('none'), [], TODAY)
    assert result['breakdown']['base_happiness'] == 150
    assert result['breakdown']['non_attachment_bonus'] == 120
    assert result['score'] == 270
    assert result['level'] == 'Newcomer'


def test_score_never_below_floor():
    result = compute_happiness(None, _assessment('strong'), [], TODAY)
    assert result['breakdown']['attachment_penalty'] == 450
    assert result['score'] == 50


def test_detailed_questionnaire():
    questionnaire = Questionnaire(
        experience_level=8,
        goals=['focus', 'calm', 'sleep'],
        sleep_pattern=9,
        practice_frequency=6,
        stress_level=2,
        mood_stability=8,
        emotional_awareness=8,
        restfulness=8,
        practice_environment='dedicated_space',
        distraction_level=2,
        support_system=8,
    )
    result = compute_happiness(questionnaire, None, [], TODAY)
    assert result['breakdown'] == {
        'base_happiness': 392,
        'questionnaire_bonus': 115,
        'attachment_penalty': 0,
        'non_attachment_bonus': 0,
        'pahm_mastery_bonus': 50,
        'session_quality_bonus': 0,
        'emotional_stability_bonus': 90,
        'mind_recovery_bonus': 0,
        'environment_bonus': 70,
        'consistency_bonus': 0,
    }
    assert result['score'] == 717
    assert result['level'] == 'Intermediate'


def test_questionnaire_defaults():
    result = compute_happiness(Questionnaire(), None, [], TODAY)
    breakdown = result['breakdown']
    assert breakdown['base_happiness'] == 215
    assert breakdown['questionnaire_bonus'] == 0
    assert breakdown['emotional_stability_bonus'] == 18
    assert breakdown['environment_bonus'] == 8
    assert result['score'] == 241


def test_explicit_zero_answers_are_not_replaced_by_defaults():
    assert base_happiness(Questionnaire(sleep_pattern=0)) == 175
    assert base_happiness(Questionnaire(sleep_pattern=0, practice_frequency=0)) == 160


def test_session_history_only():
    sessions = [
        _session(
            d,
            rating=9,
            present_percentage=90,
            pahm_counts=PahmCounts(present_neutral=5),
            environment=Environment(location='Outdoor park'),
        )
        for d in range(10)
    ]
    result = compute_happiness(None, None, sessions, TODAY)
    assert result['breakdown']['pahm_mastery_bonus'] == 38
    assert result['breakdown']['session_quality_bonus'] == 55
    assert result['breakdown']['environment_bonus'] == 25
    assert result['breakdown']['consistency_bonus'] == 55
    assert result['score'] == 323


def test_session_quality_uses_latest_ten_and_defaults():
    old = _session(30, rating=1, present_percentage=0)
    recent = [_session(d, rating=9) for d in range(10)]
    # no present percentage and no PAHM counts -> 70 each -> +8
    assert session_quality_bonus([old] + recent) == 38
    assert session_quality_bonus([_session(0)]) == 10 + 8


def test_mind_recovery_bonus_requires_recovery_sessions():
    questionnaire = Questionnaire(sleep_pattern=9, restfulness=8)
    meditation = [_session(d) for d in range(7)]
    assert mind_recovery_bonus(questionnaire, meditation) == 0

    recovery = [
        _session(d, hour=20, session_type='mind_recovery',
                 recovery_metrics=RecoveryMetrics(stress_reduction=8))
        for d in range(3)
    ]
    assert mind_recovery_bonus(questionnaire, meditation + recovery) == 40 + 30 + 25 + 20
    assert mind_recovery_bonus(None, meditation + recovery) == 25 + 20


def test_environment_outdoor_bonus_needs_five_sessions():
    four = [_session(d, environment=Environment(location='nature trail')) for d in range(4)]
    five = four + [_session(5, environment=Environment(location='OUTDOOR deck'))]
    assert environment_bonus(None, four) == 15
    assert environment_bonus(None, five) == 25


def test_weekly_consistency_uses_calendar_weeks():
    # Oct 12 2026 is a Monday: 7 sessions on Mon-Sun of one week
    week = [_session(d) for d in range(-1, 6)]
    assert weekly_consistency(week) == 1.0
    spread = [_session(d) for d in (0, 0, 0, 0, 0, 0, 0, 0)]
    assert weekly_consistency(spread) == 0.5


def test_consistency_bonus_streak_tiers():
    sessions = [_session(d) for d in range(3)]
    # streak 3 -> +12, one week of practice over ceil(3/7) = 1 -> +30
    assert consistency_bonus(sessions, TODAY) == 42


def test_level_thresholds():
    assert level_for_score(1200) == 'Master'
    assert level_for_score(1199) == 'Expert'
    assert level_for_score(800) == 'Advanced'
    assert level_for_score(600) == 'Intermediate'
    assert level_for_score(400) == 'Beginner'
    assert level_for_score(399) == 'Newcomer'


def test_compose_is_deterministic():
    questionnaire = Questionnaire(experience_level=5, goals=['calm'], sleep_pattern=6)
    sessions = [_session(d, rating=7, session_type='mind_recovery' if d % 3 == 0 else 'meditation')
                for d in range(12)]
    first = compute_happiness(questionnaire, _assessment('some'), sessions, TODAY)
    second = compute_happiness(questionnaire, _assessment('some'), list(reversed(sessions)), TODAY)
    assert first == second
    assert first['score'] >= 50
