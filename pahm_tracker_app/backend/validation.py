# backend/validation.py
"""
Boundary validation for practice records.

Everything coming from the record store (database rows, CSV payloads, imported
JSON) passes through here before the analytics core sees it. Structurally
invalid records raise InvalidRecord; optional fields that are simply missing
stay None so each calculation can apply its own default.
"""
import html
import math
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from backend.practice_schema import (
    ATTACHMENT_CATEGORIES,
    ATTACHMENT_LEVELS,
    ENVIRONMENT_FACTORS,
    PAHM_FIELDS,
    RECOVERY_METRIC_FIELDS,
    SESSION_TYPES,
    CategoryAssessment,
    EmotionalNote,
    Environment,
    PahmCounts,
    PracticeSession,
    Questionnaire,
    RecoveryMetrics,
    SelfAssessment,
)


# ============================================================================
# Input Length Limits
# ============================================================================

MAX_NOTE_LENGTH = 10000
MAX_EMOTION_TEXT_LENGTH = 500
MAX_SURVEY_RESPONSE_LENGTH = 2000
MAX_TAG_LENGTH = 200
MAX_ID_LENGTH = 128


# ============================================================================
# Input Sanitization
# ============================================================================

def sanitize_html(text: Optional[str]) -> str:
    """
    Escape HTML special characters.

    Args:
        text: Input text that may contain HTML

    Returns:
        Escaped text safe for HTML display
    """
    if text is None:
        return ''
    if not isinstance(text, str):
        text = str(text)
    return html.escape(text, quote=True)


def sanitize_for_storage(text: Optional[str]) -> str:
    """Strip surrounding whitespace and escape HTML before storing text."""
    if text is None:
        return ''
    if not isinstance(text, str):
        text = str(text)
    return sanitize_html(text.strip())


# ============================================================================
# Errors
# ============================================================================

class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


class InvalidRecord(ValidationError):
    """A record is structurally invalid and must not reach the analytics core."""

    def __init__(self, kind: str, field: str, message: str):
        self.kind = kind
        self.field = field
        super().__init__(f"Invalid {kind} record: {field} {message}")


# ============================================================================
# Primitive checks
# ============================================================================

def _pick(data: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-None value among alias keys."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and not math.isnan(value)


def _number(kind: str, name: str, value: Any, low: Optional[float] = None,
            high: Optional[float] = None) -> Optional[float]:
    if value is None:
        return None
    if not _is_number(value):
        raise InvalidRecord(kind, name, f"must be a number, got {type(value).__name__}")
    if low is not None and value < low:
        raise InvalidRecord(kind, name, f"must be >= {low}")
    if high is not None and value > high:
        raise InvalidRecord(kind, name, f"must be <= {high}")
    return value


def _integer(kind: str, name: str, value: Any, low: Optional[int] = None,
             high: Optional[int] = None) -> Optional[int]:
    value = _number(kind, name, value, low, high)
    if value is None:
        return None
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidRecord(kind, name, "must be a whole number")
        value = int(value)
    return value


def _text(kind: str, name: str, value: Any, max_length: int) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRecord(kind, name, f"must be a string, got {type(value).__name__}")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidRecord(kind, name, f"too long (max {max_length} characters)")
    return value or None


def _string_list(kind: str, name: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise InvalidRecord(kind, name, "must be a list of strings")
    items = []
    for item in value:
        if not isinstance(item, str):
            raise InvalidRecord(kind, name, "must be a list of strings")
        if len(item) > MAX_TAG_LENGTH:
            raise InvalidRecord(kind, name, f"item too long (max {MAX_TAG_LENGTH} characters)")
        items.append(item.strip())
    return tuple(items)


def parse_timestamp(kind: str, value: Any, name: str = 'timestamp') -> datetime:
    """Parse an ISO-8601 instant (a trailing 'Z' is accepted).

    Naive values are read as local time; the result is always timezone-aware.
    """
    if isinstance(value, datetime):
        return value.astimezone()
    if not isinstance(value, str) or not value.strip():
        raise InvalidRecord(kind, name, "is required and must be an ISO-8601 string")
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise InvalidRecord(kind, name, f"is not a valid ISO-8601 timestamp: {value!r}")
    return parsed.astimezone()


def validate_user_id(user_id: Optional[str]) -> str:
    """
    Validate an opaque user id.

    Args:
        user_id: User id supplied by the identity layer

    Returns:
        Validated user id

    Raises:
        ValidationError: If user_id is missing or malformed
    """
    if user_id is None:
        raise ValidationError("user_id is required")
    user_id = str(user_id).strip()
    if not user_id:
        raise ValidationError("user_id is required")
    if len(user_id) > MAX_ID_LENGTH:
        raise ValidationError(f"user_id too long (max {MAX_ID_LENGTH} characters)")
    return user_id


def validate_record_id(kind: str, record_id: Any) -> str:
    if record_id is None or not str(record_id).strip():
        raise InvalidRecord(kind, 'id', "is required")
    record_id = str(record_id).strip()
    if len(record_id) > MAX_ID_LENGTH:
        raise InvalidRecord(kind, 'id', f"too long (max {MAX_ID_LENGTH} characters)")
    return record_id


# ============================================================================
# Practice sessions
# ============================================================================

def _pahm_counts(value: Any) -> Optional[PahmCounts]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidRecord('session', 'pahm_counts', "must be a mapping")
    unknown = set(value) - set(PAHM_FIELDS)
    if unknown:
        raise InvalidRecord('session', 'pahm_counts', f"has unknown fields {sorted(unknown)}")
    counts = {}
    for name in PAHM_FIELDS:
        count = _integer('session', f'pahm_counts.{name}', value.get(name, 0), low=0)
        counts[name] = count or 0
    return PahmCounts(**counts)


def _environment(value: Any) -> Optional[Environment]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidRecord('session', 'environment', "must be a mapping")
    return Environment(**{
        name: _text('session', f'environment.{name}', value.get(name), MAX_TAG_LENGTH)
        for name in ENVIRONMENT_FACTORS
    })


def _recovery_metrics(value: Any) -> Optional[RecoveryMetrics]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidRecord('session', 'recovery_metrics', "must be a mapping")
    camel = {
        'stress_reduction': 'stressReduction',
        'energy_level': 'energyLevel',
        'clarity_improvement': 'clarityImprovement',
        'mood_improvement': 'moodImprovement',
    }
    return RecoveryMetrics(**{
        name: _number('session', f'recovery_metrics.{name}', _pick(value, name, camel[name]), 1, 10)
        for name in RECOVERY_METRIC_FIELDS
    })


def session_from_dict(data: Dict[str, Any]) -> PracticeSession:
    """
    Build a PracticeSession from a raw record.

    Both snake_case and the older camelCase field names are accepted.

    Raises:
        InvalidRecord: If any present field has the wrong type or range
    """
    if not isinstance(data, dict):
        raise InvalidRecord('session', 'record', "must be a mapping")

    session_type = _pick(data, 'session_type', 'sessionType') or 'meditation'
    if session_type not in SESSION_TYPES:
        raise InvalidRecord('session', 'session_type', f"must be one of {SESSION_TYPES}")

    duration = _integer('session', 'duration_minutes',
                        _pick(data, 'duration_minutes', 'durationMinutes', 'duration'), low=0)
    if duration is None:
        raise InvalidRecord('session', 'duration_minutes', "is required")

    return PracticeSession(
        id=validate_record_id('session', data.get('id')),
        timestamp=parse_timestamp('session', data.get('timestamp')),
        duration_minutes=duration,
        session_type=session_type,
        stage_level=_integer('session', 'stage_level', _pick(data, 'stage_level', 'stageLevel'), 1, 6),
        rating=_number('session', 'rating', data.get('rating'), 1, 10),
        present_percentage=_number('session', 'present_percentage',
                                   _pick(data, 'present_percentage', 'presentPercentage'), 0, 100),
        environment=_environment(data.get('environment')),
        pahm_counts=_pahm_counts(_pick(data, 'pahm_counts', 'pahmCounts')),
        recovery_metrics=_recovery_metrics(_pick(data, 'recovery_metrics', 'recoveryMetrics')),
        mind_recovery_context=_text('session', 'mind_recovery_context',
                                    _pick(data, 'mind_recovery_context', 'mindRecoveryContext'),
                                    MAX_TAG_LENGTH),
        mind_recovery_purpose=_text('session', 'mind_recovery_purpose',
                                    _pick(data, 'mind_recovery_purpose', 'mindRecoveryPurpose'),
                                    MAX_TAG_LENGTH),
        notes=_text('session', 'notes', data.get('notes'), MAX_NOTE_LENGTH),
    )


# ============================================================================
# Emotional notes
# ============================================================================

def validate_note(note: Optional[str]) -> str:
    """
    Validate and sanitize note text.

    Args:
        note: Note text to validate

    Returns:
        Validated and sanitized note
    """
    if not note:
        return ''
    if not isinstance(note, str):
        raise ValidationError("Note must be text")

    note = note.strip()

    if len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(
            f"Note too long (max {MAX_NOTE_LENGTH} characters)"
        )

    return sanitize_for_storage(note)


def _stored_note_content(content: Any) -> str:
    if content is None:
        return ''
    if not isinstance(content, str):
        raise ValidationError("Note must be text")
    return content


def note_from_dict(data: Dict[str, Any], sanitize: bool = True) -> EmotionalNote:
    """
    Build an EmotionalNote from raw input or from a stored payload.

    Args:
        data: Note fields
        sanitize: True for new input (length checked on the raw text, then
            HTML-escaped). Stored payloads pass False: their content was
            escaped once when written and is returned as-is.
    """
    if not isinstance(data, dict):
        raise InvalidRecord('note', 'record', "must be a mapping")
    try:
        if sanitize:
            content = validate_note(data.get('content'))
        else:
            content = _stored_note_content(data.get('content'))
    except ValidationError as e:
        raise InvalidRecord('note', 'content', str(e)) from e
    if not content:
        raise InvalidRecord('note', 'content', "is required")
    return EmotionalNote(
        id=validate_record_id('note', data.get('id')),
        timestamp=parse_timestamp('note', data.get('timestamp')),
        content=content,
        emotion=_text('note', 'emotion', data.get('emotion'), MAX_EMOTION_TEXT_LENGTH),
        energy_level=_integer('note', 'energy_level', _pick(data, 'energy_level', 'energyLevel'), 1, 10),
        tags=list(_string_list('note', 'tags', data.get('tags'))),
        gratitude=list(_string_list('note', 'gratitude', data.get('gratitude'))),
    )


# ============================================================================
# Questionnaire
# ============================================================================

# canonical field -> accepted aliases, first present wins
QUESTIONNAIRE_ALIASES = {
    'experience_level': ('experience_level', 'experienceLevel', 'mindfulnessExperience'),
    'sleep_pattern': ('sleep_pattern', 'sleepQuality', 'sleep'),
    'practice_frequency': ('practice_frequency', 'frequency', 'meditationFrequency'),
    'stress_level': ('stress_level', 'stressLevel'),
    'mood_stability': ('mood_stability', 'moodStability'),
    'emotional_awareness': ('emotional_awareness', 'emotionalAwareness'),
    'restfulness': ('restfulness', 'energyLevel'),
    'distraction_level': ('distraction_level', 'distractions'),
    'support_system': ('support_system', 'socialSupport'),
    'practice_environment': ('practice_environment', 'environment'),
    'goals': ('goals',),
    'stress_triggers': ('stress_triggers', 'stressTriggers'),
}

_NUMERIC_ANSWERS = (
    'experience_level', 'sleep_pattern', 'practice_frequency', 'stress_level',
    'mood_stability', 'emotional_awareness', 'restfulness', 'distraction_level',
    'support_system',
)

_RESERVED_KEYS = ('responses', 'completed', 'completed_at', 'completedAt')


def _flatten_answers(data: Dict[str, Any]) -> Dict[str, Any]:
    # Answers were stored both at top level and nested under "responses".
    merged: Dict[str, Any] = {}
    nested = data.get('responses')
    if nested is not None:
        if not isinstance(nested, dict):
            raise InvalidRecord('questionnaire', 'responses', "must be a mapping")
        merged.update(nested)
    for key, value in data.items():
        if key in _RESERVED_KEYS:
            continue
        if value is not None or key not in merged:
            merged[key] = value
    return merged


def questionnaire_from_dict(data: Dict[str, Any]) -> Questionnaire:
    """
    Normalize raw onboarding answers into the canonical Questionnaire shape.

    Alias spellings collapse onto one field; answers the scorer does not read
    are kept verbatim in ``responses``.
    """
    if not isinstance(data, dict):
        raise InvalidRecord('questionnaire', 'record', "must be a mapping")
    answers = _flatten_answers(data)

    consumed = set()
    values: Dict[str, Any] = {}
    for canonical, aliases in QUESTIONNAIRE_ALIASES.items():
        consumed.update(aliases)
        values[canonical] = _pick(answers, *aliases)

    fields: Dict[str, Any] = {}
    for name in _NUMERIC_ANSWERS:
        fields[name] = _number('questionnaire', name, values[name])
    fields['goals'] = list(_string_list('questionnaire', 'goals', values['goals']))
    fields['stress_triggers'] = list(_string_list('questionnaire', 'stress_triggers', values['stress_triggers']))
    fields['practice_environment'] = _text('questionnaire', 'practice_environment',
                                           values['practice_environment'], MAX_TAG_LENGTH)

    responses = {}
    for key, value in answers.items():
        if key in consumed:
            continue
        if isinstance(value, str) and len(value) > MAX_SURVEY_RESPONSE_LENGTH:
            raise InvalidRecord('questionnaire', key,
                                f"too long (max {MAX_SURVEY_RESPONSE_LENGTH} characters)")
        responses[key] = value

    completed_at = _pick(data, 'completed_at', 'completedAt')
    return Questionnaire(
        responses=responses,
        completed=bool(data.get('completed', True)),
        completed_at=parse_timestamp('questionnaire', completed_at, 'completed_at') if completed_at else None,
        **fields,
    )


# ============================================================================
# Self-assessment
# ============================================================================

def _category_entry(name: str, value: Any) -> Optional[CategoryAssessment]:
    if value is None:
        return None
    details = ''
    if isinstance(value, dict):
        details = _text('self_assessment', f'{name}.details', value.get('details'),
                        MAX_SURVEY_RESPONSE_LENGTH) or ''
        value = value.get('level')
    if value in (None, ''):
        return CategoryAssessment(level=None, details=details)
    if value not in ATTACHMENT_LEVELS:
        raise InvalidRecord('self_assessment', name, f"level must be one of {ATTACHMENT_LEVELS}")
    return CategoryAssessment(level=value, details=details)


def _views(data: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    for key in ('categories', 'responses'):
        view = data.get(key)
        if view is None:
            continue
        if not isinstance(view, dict):
            raise InvalidRecord('self_assessment', key, "must be a mapping")
        yield view
    yield data


def self_assessment_from_dict(data: Dict[str, Any]) -> SelfAssessment:
    """
    Collapse the categories / responses / flat-field views into one map.

    The first view that carries a level for a category wins, in that order.
    """
    if not isinstance(data, dict):
        raise InvalidRecord('self_assessment', 'record', "must be a mapping")
    categories: Dict[str, CategoryAssessment] = {}
    for view in _views(data):
        for name in ATTACHMENT_CATEGORIES:
            existing = categories.get(name)
            if existing is not None and existing.level is not None:
                continue
            entry = _category_entry(name, view.get(name))
            if entry is None:
                continue
            if existing is not None and not entry.details:
                entry = CategoryAssessment(level=entry.level, details=existing.details)
            categories[name] = entry

    completed_at = _pick(data, 'completed_at', 'completedAt')
    return SelfAssessment(
        categories=categories,
        completed=bool(data.get('completed', True)),
        completed_at=parse_timestamp('self_assessment', completed_at, 'completed_at') if completed_at else None,
    )
