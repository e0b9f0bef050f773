from datetime import date, datetime, time, timedelta

import pytest

from backend.analytics import (
    Analytics,
    compute_happiness,
    get_emotion_distribution,
    get_practice_duration_data,
    get_practice_overview,
    get_progress_trends,
)
from backend.practice_schema import EmotionalNote, PracticeSession
from backend.record_store import PracticeRecordStore
from backend.score_cache import ScoreCache, cache_key
from backend.score_logger import ScoreLogger
from backend.temporal import range_start


TODAY = date(2026, 10, 17)


def _iso(days_ago, hour=8):
    return datetime.combine(TODAY - timedelta(days=days_ago), time(hour)).isoformat()


def _session(idx, days_ago, rating=None, present=None, session_type='meditation', duration=20):
    return PracticeSession(
        id=f"s{idx}",
        timestamp=datetime.combine(TODAY - timedelta(days=days_ago), time(8)).astimezone(),
        duration_minutes=duration,
        session_type=session_type,
        rating=rating,
        present_percentage=present,
    )


@pytest.fixture
def store(tmp_path, monkeypatch):
    monkeypatch.delenv('USE_CSV', raising=False)
    monkeypatch.delenv('DISABLE_CSV_FALLBACK', raising=False)
    return PracticeRecordStore(data_dir=str(tmp_path / 'data'),
                               database_url=f"sqlite:///{tmp_path / 'analytics.db'}")


@pytest.fixture
def analytics(store, tmp_path):
    return Analytics(store, cache=ScoreCache(),
                     score_logger=ScoreLogger(log_dir=str(tmp_path / 'logs'), enabled=True))


def test_overview_totals():
    sessions = [
        _session(0, 2, rating=8, present=80, duration=30),
        _session(1, 1, rating=None, present=None, duration=20),
        _session(2, 0, rating=9, present=90, session_type='mind_recovery', duration=5),
    ]
    note = EmotionalNote(id='n1', timestamp=sessions[0].timestamp, content='steady')
    overview = get_practice_overview(sessions, [note], TODAY)
    assert overview['total_sessions'] == 3
    assert overview['total_meditation_sessions'] == 2
    assert overview['total_mind_recovery_sessions'] == 1
    assert overview['total_practice_minutes'] == 55
    assert overview['total_meditation_minutes'] == 50
    assert overview['total_mind_recovery_minutes'] == 5
    assert overview['average_session_length'] == 18
    assert overview['average_quality'] == 5.7
    assert overview['average_present_percentage'] == 57
    assert overview['current_streak'] == 3
    assert overview['emotional_notes_count'] == 1


def test_overview_empty():
    overview = get_practice_overview([], [], TODAY)
    assert overview['total_sessions'] == 0
    assert overview['average_quality'] == 0
    assert overview['current_streak'] == 0


def test_progress_trends_need_older_sessions():
    assert get_progress_trends([_session(i, i) for i in range(4)]) is None
    assert get_progress_trends([_session(i, i) for i in range(10)]) is None


def test_progress_trends_compare_latest_ten_with_previous_ten():
    older = [_session(i, 30 - i, rating=6, present=70) for i in range(10)]
    recent = [_session(10 + i, 10 - i, rating=8, present=65) for i in range(10)]
    trends = get_progress_trends(older + recent)
    assert trends == {
        'quality_trend': 'improving',
        'present_trend': 'declining',
        'quality_change': 2.0,
        'present_change': -5.0,
        'recent_avg_quality': 8.0,
        'recent_avg_present': 65,
    }


def test_facade_matches_pure_function(store, analytics):
    store.save_questionnaire('u1', {'experience_level': 6, 'goals': ['calm'], 'sleep_pattern': 7})
    store.save_self_assessment('u1', {'responses': {name: 'none' for name in
                                                    ('taste', 'smell', 'sound', 'sight', 'touch', 'mind')}})
    for d in range(5):
        store.add_session('u1', {'id': f"s{d}", 'timestamp': _iso(d), 'duration_minutes': 20, 'rating': 8})

    expected = compute_happiness(
        store.get_questionnaire('u1'), store.get_self_assessment('u1'), store.get_sessions('u1'), TODAY,
    )
    assert analytics.compute_happiness('u1', TODAY) == expected


def test_score_is_cached_until_a_collection_changes(store, analytics):
    store.add_session('u1', {'id': 'a', 'timestamp': _iso(0), 'duration_minutes': 10})
    first = analytics.compute_happiness('u1', TODAY)
    again = analytics.compute_happiness('u1', TODAY)
    assert again == first
    assert analytics.cache.hits == 1
    assert analytics.cache.misses == 1

    store.add_session('u1', {'id': 'b', 'timestamp': _iso(1), 'duration_minutes': 10, 'rating': 10})
    updated = analytics.compute_happiness('u1', TODAY)
    assert analytics.cache.misses == 2
    assert first['breakdown']['session_quality_bonus'] == 18
    assert updated['breakdown']['session_quality_bonus'] == 28


def test_cached_result_cannot_be_mutated_by_callers(store, analytics):
    result = analytics.compute_happiness('u1', TODAY)
    result['score'] = 9999
    assert analytics.compute_happiness('u1', TODAY)['score'] == 50


def test_cache_key_depends_on_markers_and_date():
    markers = {'sessions': '1:2026-10-17T08:00:00'}
    key = cache_key('u1', markers, TODAY)
    assert key == cache_key('u1', dict(markers), TODAY)
    assert key != cache_key('u1', {'sessions': '2:2026-10-17T08:05:00'}, TODAY)
    assert key != cache_key('u1', markers, TODAY + timedelta(days=1))
    assert key != cache_key('u2', markers, TODAY)


def test_cache_evicts_oldest_entry():
    cache = ScoreCache(max_entries=2)
    cache.put('a', 1)
    cache.put('b', 2)
    cache.put('c', 3)
    assert len(cache) == 2
    assert cache.get('a') is None
    assert cache.get('c') == 3
    cache.invalidate()
    assert len(cache) == 0


def test_score_history_is_logged(store, analytics):
    analytics.compute_happiness('u1', TODAY)
    store.save_questionnaire('u1', {'experience_level': 9, 'goals': ['a', 'b', 'c', 'd'],
                                    'sleep_pattern': 9, 'practice_frequency': 7})
    analytics.compute_happiness('u1', TODAY)

    events = analytics.score_logger.read_events('u1')
    computed = [e for e in events if e['event_type'] == 'score_computed']
    changes = [e for e in events if e['event_type'] == 'level_changed']
    assert len(computed) == 2
    assert computed[0]['score'] == 50
    assert changes and changes[0]['previous_level'] == 'Newcomer'


def test_dashboard_contains_every_view(store, analytics):
    store.add_session('u1', {'id': 'a', 'timestamp': _iso(0), 'duration_minutes': 10,
                             'pahm_counts': {'present_neutral': 3}})
    dashboard = analytics.get_dashboard('u1', TODAY)
    assert set(dashboard) == {
        'happiness', 'temporal', 'attention', 'environment',
        'mind_recovery', 'attachment', 'overview', 'progress_trends',
        'emotion_distribution', 'practice_duration',
    }
    assert dashboard['attention']['present_percentage'] == 100
    assert dashboard['attachment']['level'] == 'no-data'
    assert dashboard['temporal']['current_streak'] == 1
    assert dashboard['practice_duration'] == [{'date': '2026-10-17', 'duration': 10, 'quality': 0.0}]
    assert dashboard['emotion_distribution'] == []


def _note(idx, days_ago, emotion):
    return EmotionalNote(
        id=f"n{idx}",
        timestamp=datetime.combine(TODAY - timedelta(days=days_ago), time(21)).astimezone(),
        content='entry',
        emotion=emotion,
    )


def test_emotion_distribution_counts_recent_notes():
    notes = [
        _note(0, 40, 'sad'),
        _note(1, 5, 'calm'),
        _note(2, 4, 'stressed'),
        _note(3, 3, 'calm'),
        _note(4, 2, None),
        _note(5, 1, 'wistful'),
        _note(6, 0, 'stressed'),
    ]
    assert get_emotion_distribution(notes, 'month', TODAY) == [
        {'emotion': 'calm', 'count': 2, 'color': '#2196f3'},
        {'emotion': 'stressed', 'count': 2, 'color': '#ff5722'},
        {'emotion': 'wistful', 'count': 1, 'color': '#9e9e9e'},
    ]
    assert [e['emotion'] for e in get_emotion_distribution(notes, 'year', TODAY)] == ['calm', 'stressed', 'sad', 'wistful']
    assert get_emotion_distribution([], 'week', TODAY) == []


def test_practice_duration_per_day():
    sessions = [
        _session(0, 10, rating=8, duration=20),
        _session(1, 2, rating=8, duration=15),
        _session(2, 2, rating=None, duration=5),
        _session(3, 0, rating=9, duration=30),
    ]
    assert get_practice_duration_data(sessions, 'week', TODAY) == [
        {'date': '2026-10-15', 'duration': 20, 'quality': 4.0},
        {'date': '2026-10-17', 'duration': 30, 'quality': 9.0},
    ]
    assert len(get_practice_duration_data(sessions, 'month', TODAY)) == 3


def test_time_range_boundaries():
    assert range_start('week', TODAY) == date(2026, 10, 10)
    assert range_start('month', TODAY) == date(2026, 9, 17)
    assert range_start('quarter', TODAY) == date(2026, 7, 17)
    assert range_start('year', TODAY) == date(2025, 10, 17)
    assert range_start('decade', TODAY) == date(2026, 9, 17)
    assert range_start('month', date(2026, 3, 31)) == date(2026, 2, 28)
