# backend/practice_schema.py
"""
Canonical practice records and the shared constants they are built on.

Records are frozen dataclasses produced by backend.validation; analyzers only
ever read them. Timestamps are timezone-aware and calendar days are local days.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


SESSION_TYPES = ("meditation", "mind_recovery")

TIME_AXIS = ("present", "past", "future")
TONE_AXIS = ("attachment", "neutral", "aversion")
PAHM_FIELDS = tuple(f"{t}_{tone}" for t in TIME_AXIS for tone in TONE_AXIS)

ENVIRONMENT_FACTORS = ("posture", "location", "lighting", "sounds")

RECOVERY_METRIC_FIELDS = (
    "stress_reduction",
    "energy_level",
    "clarity_improvement",
    "mood_improvement",
)

ATTACHMENT_CATEGORIES = ("taste", "smell", "sound", "sight", "touch", "mind")
ATTACHMENT_LEVELS = ("none", "some", "strong")

# Present-moment baseline used when a session logged no PAHM observations.
STAGE_PRESENT_BASELINES = {1: 85, 2: 85, 3: 85, 4: 90, 5: 92, 6: 97}
DEFAULT_PRESENT_BASELINE = 85


def round_half_up(value: float) -> int:
    """Round .5 toward positive infinity (Python's round() uses banker's rounding)."""
    return int(math.floor(value + 0.5))


def round_one_decimal(value: float) -> float:
    return round_half_up(value * 10) / 10


def local_day(ts: datetime) -> date:
    """Calendar day of a timestamp in the local timezone."""
    if ts.tzinfo is not None:
        ts = ts.astimezone()
    return ts.date()


@dataclass(frozen=True)
class PahmCounts:
    present_attachment: int = 0
    present_neutral: int = 0
    present_aversion: int = 0
    past_attachment: int = 0
    past_neutral: int = 0
    past_aversion: int = 0
    future_attachment: int = 0
    future_neutral: int = 0
    future_aversion: int = 0

    def total(self) -> int:
        return sum(getattr(self, f) for f in PAHM_FIELDS)

    def axis_total(self, prefix_or_suffix: str) -> int:
        """Sum the three cells sharing a time value (present) or a tone value (neutral)."""
        if prefix_or_suffix in TIME_AXIS:
            return sum(getattr(self, f"{prefix_or_suffix}_{tone}") for tone in TONE_AXIS)
        return sum(getattr(self, f"{t}_{prefix_or_suffix}") for t in TIME_AXIS)

    def to_dict(self) -> Dict[str, int]:
        return {f: getattr(self, f) for f in PAHM_FIELDS}


@dataclass(frozen=True)
class Environment:
    posture: Optional[str] = None
    location: Optional[str] = None
    lighting: Optional[str] = None
    sounds: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {f: getattr(self, f) for f in ENVIRONMENT_FACTORS}


@dataclass(frozen=True)
class RecoveryMetrics:
    stress_reduction: Optional[float] = None
    energy_level: Optional[float] = None
    clarity_improvement: Optional[float] = None
    mood_improvement: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {f: getattr(self, f) for f in RECOVERY_METRIC_FIELDS}


@dataclass(frozen=True)
class PracticeSession:
    """One completed meditation or mind-recovery session."""
    id: str
    timestamp: datetime
    duration_minutes: int
    session_type: str = "meditation"
    stage_level: Optional[int] = None
    rating: Optional[float] = None
    present_percentage: Optional[float] = None
    environment: Optional[Environment] = None
    pahm_counts: Optional[PahmCounts] = None
    recovery_metrics: Optional[RecoveryMetrics] = None
    mind_recovery_context: Optional[str] = None
    mind_recovery_purpose: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_mind_recovery(self) -> bool:
        return self.session_type == "mind_recovery"

    @property
    def day(self) -> date:
        return local_day(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "duration_minutes": self.duration_minutes,
            "session_type": self.session_type,
            "stage_level": self.stage_level,
            "rating": self.rating,
            "present_percentage": self.present_percentage,
            "environment": self.environment.to_dict() if self.environment else None,
            "pahm_counts": self.pahm_counts.to_dict() if self.pahm_counts else None,
            "recovery_metrics": self.recovery_metrics.to_dict() if self.recovery_metrics else None,
            "mind_recovery_context": self.mind_recovery_context,
            "mind_recovery_purpose": self.mind_recovery_purpose,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class EmotionalNote:
    id: str
    timestamp: datetime
    content: str
    emotion: Optional[str] = None
    energy_level: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    gratitude: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "content": self.content,
            "emotion": self.emotion,
            "energy_level": self.energy_level,
            "tags": list(self.tags),
            "gratitude": list(self.gratitude),
        }


@dataclass(frozen=True)
class Questionnaire:
    """Canonical onboarding answers.

    Scored answers are lifted into named fields; everything else the user
    answered stays in ``responses`` untouched.
    """
    experience_level: Optional[float] = None
    goals: List[str] = field(default_factory=list)
    sleep_pattern: Optional[float] = None
    practice_frequency: Optional[float] = None
    stress_level: Optional[float] = None
    mood_stability: Optional[float] = None
    emotional_awareness: Optional[float] = None
    restfulness: Optional[float] = None
    practice_environment: Optional[str] = None
    distraction_level: Optional[float] = None
    support_system: Optional[float] = None
    stress_triggers: List[str] = field(default_factory=list)
    responses: Dict[str, Any] = field(default_factory=dict)
    completed: bool = True
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experience_level": self.experience_level,
            "goals": list(self.goals),
            "sleep_pattern": self.sleep_pattern,
            "practice_frequency": self.practice_frequency,
            "stress_level": self.stress_level,
            "mood_stability": self.mood_stability,
            "emotional_awareness": self.emotional_awareness,
            "restfulness": self.restfulness,
            "practice_environment": self.practice_environment,
            "distraction_level": self.distraction_level,
            "support_system": self.support_system,
            "stress_triggers": list(self.stress_triggers),
            "responses": dict(self.responses),
            "completed": self.completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class CategoryAssessment:
    level: Optional[str] = None
    details: str = ""


@dataclass(frozen=True)
class SelfAssessment:
    """Six sense-door attachment levels, stored once as a canonical map."""
    categories: Dict[str, CategoryAssessment] = field(default_factory=dict)
    completed: bool = True
    completed_at: Optional[datetime] = None

    def level_of(self, category: str) -> Optional[str]:
        entry = self.categories.get(category)
        return entry.level if entry else None

    def to_views(self) -> Dict[str, Any]:
        """Rebuild the flat, ``categories`` and ``responses`` shapes older clients read."""
        categories = {}
        responses = {}
        flat: Dict[str, Any] = {}
        for name in ATTACHMENT_CATEGORIES:
            entry = self.categories.get(name)
            if entry is None:
                continue
            categories[name] = {"level": entry.level, "details": entry.details, "category": name}
            responses[name] = entry.level
            flat[name] = entry.level
        flat["categories"] = categories
        flat["responses"] = responses
        flat["completed"] = self.completed
        flat["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return flat

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories": {
                name: {"level": entry.level, "details": entry.details}
                for name, entry in self.categories.items()
            },
            "completed": self.completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
