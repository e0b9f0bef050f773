from datetime import datetime, timedelta

from backend.mind_recovery import display_label, get_mind_recovery_analytics
from backend.practice_schema import PracticeSession, RecoveryMetrics


_BASE = datetime(2026, 9, 1, 18, 0).astimezone()


def _recovery(idx, context=None, purpose=None, rating=None, duration=5, metrics=None):
    return PracticeSession(
        id=f"mr{idx}",
        timestamp=_BASE + timedelta(hours=idx),
        duration_minutes=duration,
        session_type='mind_recovery',
        rating=rating,
        mind_recovery_context=context,
        mind_recovery_purpose=purpose,
        recovery_metrics=RecoveryMetrics(**metrics) if metrics else None,
    )


def _meditation(idx):
    return PracticeSession(id=f"m{idx}", timestamp=_BASE + timedelta(days=idx), duration_minutes=30)


def test_no_recovery_sessions():
    result = get_mind_recovery_analytics([_meditation(0), _meditation(1)])
    assert result['total_sessions'] == 0
    assert result['total_meditation_sessions'] == 2
    assert result['context_stats'] == []
    assert result['purpose_stats'] == []
    assert result['most_used_context'] is None
    assert result['highest_rated_context'] is None
    assert result['avg_recovery_metrics'] is None


def test_totals_and_groups():
    sessions = [
        _recovery(0, 'work-break', 'stress-relief', rating=8, duration=5),
        _recovery(1, 'work-break', 'energy-boost', rating=6, duration=3),
        _recovery(2, 'before-sleep', 'stress-relief', rating=7, duration=10),
        _recovery(3, 'after-stress', None, rating=7, duration=4),
        _recovery(4, None, 'focus', rating=9, duration=2),
        _meditation(0),
    ]
    result = get_mind_recovery_analytics(sessions)
    assert result['total_sessions'] == 5
    assert result['total_meditation_sessions'] == 1
    assert result['total_minutes'] == 24
    assert result['avg_duration'] == 5
    assert result['avg_rating'] == 7.4

    contexts = [(g['key'], g['count']) for g in result['context_stats']]
    assert contexts == [('work-break', 2), ('before-sleep', 1), ('after-stress', 1)]
    assert result['context_stats'][0]['avg_rating'] == 7.0
    assert result['context_stats'][0]['avg_duration'] == 4
    assert result['context_stats'][0]['label'] == 'Work Break'

    purposes = [(g['key'], g['count']) for g in result['purpose_stats']]
    assert purposes == [('stress-relief', 2), ('energy-boost', 1), ('focus', 1)]

    assert result['most_used_context']['key'] == 'work-break'
    # all three contexts average 7.0
    assert result['highest_rated_context']['key'] == 'after-stress'
    assert result['highest_rated_context']['effectiveness'] == 70
    assert '_mean_rating' not in result['highest_rated_context']


def test_highest_rated_tie_breaks_lexicographically():
    sessions = [
        _recovery(0, 'work-break', rating=7),
        _recovery(1, 'before-sleep', rating=7),
        _recovery(2, 'after-stress', rating=7),
    ]
    result = get_mind_recovery_analytics(sessions)
    assert result['highest_rated_context']['key'] == 'after-stress'
    assert result['most_used_context']['key'] == 'work-break'


def test_missing_rating_counts_as_zero():
    result = get_mind_recovery_analytics([_recovery(0, 'walk', rating=None), _recovery(1, 'walk', rating=9)])
    assert result['avg_rating'] == 4.5


def test_average_recovery_metrics():
    sessions = [
        _recovery(0, 'walk', metrics={'stress_reduction': 8, 'energy_level': 6,
                                      'clarity_improvement': 7, 'mood_improvement': 9}),
        _recovery(1, 'walk', metrics={'stress_reduction': 5, 'energy_level': 7,
                                      'clarity_improvement': 7, 'mood_improvement': 8}),
        _recovery(2, 'walk'),
    ]
    metrics = get_mind_recovery_analytics(sessions)['avg_recovery_metrics']
    assert metrics == {
        'stress_reduction': 6.5,
        'energy_level': 6.5,
        'clarity_improvement': 7.0,
        'mood_improvement': 8.5,
    }


def test_display_label():
    assert display_label('morning-recharge') == 'Morning Recharge'
    assert display_label('before-sleep') == 'Before Sleep'


def test_untagged_sessions_stay_out_of_groups():
    sessions = [_recovery(i, rating=9) for i in range(3)] + [_recovery(3, 'work-break', rating=5)]
    result = get_mind_recovery_analytics(sessions)
    assert result['total_sessions'] == 4
    assert [g['key'] for g in result['context_stats']] == ['work-break']
    assert result['most_used_context']['key'] == 'work-break'
    assert result['highest_rated_context']['key'] == 'work-break'
    assert result['purpose_stats'] == []


def test_no_tags_at_all():
    result = get_mind_recovery_analytics([_recovery(0, rating=6)])
    assert result['context_stats'] == []
    assert result['most_used_context'] is None
    assert result['highest_rated_context'] is None


def _at_hour(idx, hour, rating):
    return PracticeSession(
        id=f"t{idx}",
        timestamp=datetime(2026, 9, 2, hour, 30).astimezone(),
        duration_minutes=12,
        session_type='mind_recovery',
        rating=rating,
    )


def test_time_patterns():
    sessions = [_at_hour(0, 7, 6), _at_hour(1, 11, 8), _at_hour(2, 14, 9), _at_hour(3, 2, 5), _at_hour(4, 19, 7)]
    patterns = get_mind_recovery_analytics(sessions)['time_patterns']
    assert patterns == {
        'morning_effectiveness': 70,
        'afternoon_effectiveness': 90,
        'evening_effectiveness': 60,
        'optimal_time': 'Afternoon',
    }


def test_time_pattern_ties_go_to_earliest_period():
    patterns = get_mind_recovery_analytics([_at_hour(0, 20, 8), _at_hour(1, 13, 8)])['time_patterns']
    assert patterns['morning_effectiveness'] == 0
    assert patterns['optimal_time'] == 'Afternoon'


def test_recommendations():
    sessions = [
        _recovery(0, 'work-break', 'stress-relief', rating=8, duration=5),
        _recovery(1, 'before-sleep', 'energy-boost', rating=6, duration=3),
    ]
    assert get_mind_recovery_analytics(sessions)['recommendations'] == [
        'Work Break sessions work best for you (80% effectiveness)',
        'Use mind recovery primarily for stress relief',
        'Your optimal time for mind recovery is evening',
        'Consider longer sessions (10+ minutes) for better results',
    ]


def test_recommendations_skip_missing_tags_and_long_sessions():
    sessions = [_at_hour(0, 8, 9), _at_hour(1, 9, 7)]
    assert get_mind_recovery_analytics(sessions)['recommendations'] == [
        'Your optimal time for mind recovery is morning',
    ]


def test_no_recovery_sessions_have_no_patterns():
    result = get_mind_recovery_analytics([_meditation(0)])
    assert result['time_patterns']['optimal_time'] == 'Unknown'
    assert result['recommendations'] == []
