from pydantic import BaseModel, Field, field_validator
from typing import Dict, Literal, Optional, get_args
from datetime import datetime, timezone

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3

Category = Literal[
    'Greeting', 'Food', 'Travel', 'Shopping', 'Family', 'Numbers', 'Time', 'Weather',
    'Common Phrases', 'Question Words', 'Verbs', 'Adjectives', 'Other',
]
Difficulty = Literal['Beginner', 'Intermediate', 'Advanced']

CATEGORIES = get_args(Category)
DIFFICULTIES = get_args(Difficulty)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReviewState(BaseModel):
    """Scheduling fields of one flashcard."""
    interval: int = Field(0, ge=0)
    repetitions: int = Field(0, ge=0)
    ease_factor: float = Field(DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    due_at: datetime = Field(default_factory=utcnow)

    @field_validator('due_at')
    @classmethod
    def _due_at_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class ActivityState(BaseModel):
    last_active_at: Optional[datetime] = None  # None until the first ping
    streak: int = Field(0, ge=0)

    @field_validator('last_active_at')
    @classmethod
    def _last_active_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None


class Example(BaseModel):
    """Example sentence showing the word in use."""
    text: str = ""
    transliteration: str = ""
    translation: str = ""


class Card(ReviewState):
    id: str
    front: str
    back: str
    transliteration: str = ""
    example: Example = Field(default_factory=Example)
    category: Category = "Common Phrases"
    difficulty: Difficulty = "Beginner"
    audio_url: str = ""
    image_url: str = ""
    last_quality: Optional[int] = None
    removed: int = 0

    def review_state(self) -> ReviewState:
        return ReviewState(
            interval=self.interval,
            repetitions=self.repetitions,
            ease_factor=self.ease_factor,
            due_at=self.due_at,
        )


class CardCreate(BaseModel):
    front: str
    back: str
    transliteration: str = ""
    example: Example = Field(default_factory=Example)
    category: Category = "Common Phrases"
    difficulty: Difficulty = "Beginner"
    audio_url: str = ""
    image_url: str = ""


class CardUpdate(BaseModel):
    front: Optional[str] = None
    back: Optional[str] = None
    transliteration: Optional[str] = None
    example: Optional[Example] = None
    category: Optional[Category] = None
    difficulty: Optional[Difficulty] = None
    audio_url: Optional[str] = None
    image_url: Optional[str] = None


class ReviewRequest(BaseModel):
    # Not range checked: out-of-range scores are clamped by the scheduler
    quality: int


class ReviewResponse(BaseModel):
    id: str
    interval: int
    repetitions: int
    ease_factor: float
    due_at: datetime


class ActivityResponse(BaseModel):
    learner_id: str
    streak: int
    last_active_at: Optional[datetime] = None


class ForecastResponse(BaseModel):
    days: int
    count: int


class DashboardStats(BaseModel):
    total_cards: int
    due_now: int
    due_within: int
    forecast_days: int
    known_cards: int
    retention_rate: float
    streak: int
    categories: Dict[str, int] = {}
