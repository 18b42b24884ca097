import logging
import math
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .models import (
    CATEGORIES,
    DIFFICULTIES,
    ActivityState,
    Card,
    DEFAULT_EASE_FACTOR,
    Example,
    MIN_EASE_FACTOR,
    as_utc,
    utcnow,
)
from .scheduler import new_review_state


def _parse_timestamp(value, default: Optional[datetime]) -> Optional[datetime]:
    if value is None or value == "" or pd.isna(value):
        return default
    try:
        # fromisoformat also covers dates past pandas' Timestamp range
        return as_utc(datetime.fromisoformat(str(value)))
    except ValueError:
        pass
    try:
        return as_utc(pd.Timestamp(value).to_pydatetime())
    except (ValueError, TypeError):
        logging.warning(f"Unreadable timestamp {value!r}, using {default}")
        return default


def _format_timestamp(value: Optional[datetime]) -> str:
    return as_utc(value).isoformat() if value is not None else ""


class CsvTable:
    """A pandas DataFrame mirrored to a CSV file."""

    columns: Dict[str, object] = {}

    def __init__(self, file_path):
        self.file_path = Path(file_path)
        self.df = None

    def load(self) -> bool:
        """Loads data from CSV. A missing or unreadable file gives an empty table."""
        if not os.path.exists(self.file_path):
            logging.info(f"File not found, starting empty: {self.file_path}")
            self.df = pd.DataFrame(columns=list(self.columns))
            return False

        try:
            self.df = pd.read_csv(self.file_path, encoding='utf-8-sig', dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            logging.error(f"Error loading CSV {self.file_path}: {e}")
            self.df = pd.DataFrame(columns=list(self.columns))
            return False

        self._ensure_columns()
        return True

    def _ensure_columns(self):
        for col, default in self.columns.items():
            if col not in self.df.columns:
                self.df[col] = default

    def _frame(self) -> pd.DataFrame:
        if self.df is None:
            self.load()
        return self.df

    def save_data(self):
        """Saves DataFrame to CSV."""
        if self.df is not None:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            self.df.to_csv(self.file_path, index=False, encoding='utf-8-sig')


class CardStore(CsvTable):
    columns = {
        'id': '',
        'front': '',
        'back': '',
        'transliteration': '',
        'example_text': '',
        'example_transliteration': '',
        'example_translation': '',
        'category': 'Common Phrases',
        'difficulty': 'Beginner',
        'audio_url': '',
        'image_url': '',
        'interval': '0',
        'repetitions': '0',
        'ease_factor': str(DEFAULT_EASE_FACTOR),
        'due_at': '',
        'last_quality': '',
        'removed': '0',
    }

    # Column names used by older decks
    legacy_columns = {
        'question': 'front', 'answer': 'back',
        'arabic': 'front', 'translation': 'back',
        'efactor': 'ease_factor', 'repetition': 'repetitions',
        'dueDate': 'due_at',
        'audioUrl': 'audio_url', 'imageUrl': 'image_url',
    }

    def __init__(self, file_path, clock=utcnow):
        super().__init__(file_path)
        self.clock = clock

    def _ensure_columns(self):
        for old, new in self.legacy_columns.items():
            if old in self.df.columns and new not in self.df.columns:
                self.df[new] = self.df[old]

        super()._ensure_columns()

        mask = self.df['id'] == ''
        if mask.any():
            self.df.loc[mask, 'id'] = [str(uuid.uuid4()) for _ in range(mask.sum())]

    def _row_to_card(self, row: dict) -> Card:
        def as_int(value, default: int) -> int:
            try:
                return int(float(value))
            except (ValueError, TypeError, OverflowError):
                return default

        try:
            ease_factor = float(row.get('ease_factor', DEFAULT_EASE_FACTOR))
        except (ValueError, TypeError):
            ease_factor = DEFAULT_EASE_FACTOR
        if not math.isfinite(ease_factor):
            logging.warning(f"Card {row['id']}: ease factor {ease_factor} replaced by {DEFAULT_EASE_FACTOR}")
            ease_factor = DEFAULT_EASE_FACTOR

        category = row.get('category') or 'Common Phrases'
        if category not in CATEGORIES:
            logging.warning(f"Card {row['id']}: unknown category {category!r}, filed under Other")
            category = 'Other'
        difficulty = row.get('difficulty') or 'Beginner'
        if difficulty not in DIFFICULTIES:
            logging.warning(f"Card {row['id']}: unknown difficulty {difficulty!r}, using Beginner")
            difficulty = 'Beginner'

        last_quality = row.get('last_quality', '')
        return Card(
            id=str(row['id']),
            front=row.get('front', ''),
            back=row.get('back', ''),
            transliteration=row.get('transliteration', ''),
            example=Example(
                text=row.get('example_text', ''),
                transliteration=row.get('example_transliteration', ''),
                translation=row.get('example_translation', ''),
            ),
            category=category,
            difficulty=difficulty,
            audio_url=row.get('audio_url', ''),
            image_url=row.get('image_url', ''),
            interval=max(0, as_int(row.get('interval'), 0)),
            repetitions=max(0, as_int(row.get('repetitions'), 0)),
            ease_factor=max(ease_factor, MIN_EASE_FACTOR),
            due_at=_parse_timestamp(row.get('due_at'), self.clock()),
            last_quality=as_int(last_quality, 0) if last_quality != '' else None,
            removed=as_int(row.get('removed'), 0),
        )

    def _card_to_row(self, card: Card) -> dict:
        return {
            'id': card.id,
            'front': card.front,
            'back': card.back,
            'transliteration': card.transliteration,
            'example_text': card.example.text,
            'example_transliteration': card.example.transliteration,
            'example_translation': card.example.translation,
            'category': card.category,
            'difficulty': card.difficulty,
            'audio_url': card.audio_url,
            'image_url': card.image_url,
            'interval': str(card.interval),
            'repetitions': str(card.repetitions),
            'ease_factor': repr(card.ease_factor),
            'due_at': _format_timestamp(card.due_at),
            'last_quality': '' if card.last_quality is None else str(card.last_quality),
            'removed': str(card.removed),
        }

    def _index_of(self, card_id: str) -> Optional[int]:
        df = self._frame()
        matches = df.index[df['id'] == card_id].tolist()
        return matches[0] if matches else None

    def _active(self) -> pd.DataFrame:
        df = self._frame()
        removed = pd.to_numeric(df['removed'], errors='coerce').fillna(0)
        return df[removed != 1]

    def list_cards(self) -> List[Card]:
        return [self._row_to_card(row) for row in self._active().to_dict('records')]

    def query_cards(
        self,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Card]:
        """Active cards filtered by category/difficulty, paginated in file order."""
        filtered = self._active()
        if category:
            filtered = filtered[filtered['category'] == category]
        if difficulty:
            filtered = filtered[filtered['difficulty'] == difficulty]
        end = None if limit is None else offset + limit
        return [self._row_to_card(row) for row in filtered.iloc[offset:end].to_dict('records')]

    def get_card(self, card_id: str) -> Optional[Card]:
        idx = self._index_of(card_id)
        if idx is None:
            return None
        card = self._row_to_card(self.df.loc[idx].to_dict())
        return None if card.removed else card

    def add_card(self, card: Card) -> Card:
        df = self._frame()
        new_row = pd.DataFrame([self._card_to_row(card)], dtype=str)
        self.df = new_row if df.empty else pd.concat([df, new_row], ignore_index=True)
        self.save_data()
        return card

    def save_card(self, card: Card) -> bool:
        idx = self._index_of(card.id)
        if idx is None:
            return False
        for k, v in self._card_to_row(card).items():
            self.df.at[idx, k] = v
        self.save_data()
        return True

    def reset_progress(self, now: datetime) -> int:
        """Puts every card back to its never-reviewed scheduling state."""
        df = self._frame()
        fresh = new_review_state(now)
        df['interval'] = str(fresh.interval)
        df['repetitions'] = str(fresh.repetitions)
        df['ease_factor'] = repr(fresh.ease_factor)
        df['due_at'] = _format_timestamp(fresh.due_at)
        df['last_quality'] = ''
        self.save_data()
        return len(df)


class ActivityStore(CsvTable):
    columns = {'learner_id': '', 'last_active_at': '', 'streak': '0'}

    def get(self, learner_id: str) -> ActivityState:
        df = self._frame()
        rows = df[df['learner_id'] == learner_id]
        if rows.empty:
            return ActivityState()
        row = rows.iloc[0]
        try:
            streak = max(0, int(row['streak']))
        except (ValueError, TypeError):
            streak = 0
        return ActivityState(
            last_active_at=_parse_timestamp(row['last_active_at'], None),
            streak=streak,
        )

    def put(self, learner_id: str, state: ActivityState):
        df = self._frame()
        row = {
            'learner_id': learner_id,
            'last_active_at': _format_timestamp(state.last_active_at),
            'streak': str(state.streak),
        }
        matches = df.index[df['learner_id'] == learner_id].tolist()
        if matches:
            for k, v in row.items():
                df.at[matches[0], k] = v
        else:
            new_row = pd.DataFrame([row], dtype=str)
            self.df = new_row if df.empty else pd.concat([df, new_row], ignore_index=True)
        self.save_data()

    def reset_streaks(self):
        df = self._frame()
        df['streak'] = '0'
        self.save_data()


class ReviewLog(CsvTable):
    """Append-only history of review scores."""

    columns = {'card_id': '', 'quality': '', 'reviewed_at': ''}

    def append(self, card_id: str, quality: int, reviewed_at: datetime):
        df = self._frame()
        new_row = pd.DataFrame([{
            'card_id': card_id,
            'quality': str(quality),
            'reviewed_at': _format_timestamp(reviewed_at),
        }], dtype=str)
        self.df = new_row if df.empty else pd.concat([df, new_row], ignore_index=True)
        self.save_data()

    def recent_qualities(self, limit: int) -> List[int]:
        df = self._frame()
        if df.empty or limit <= 0:
            return []
        qualities = pd.to_numeric(df['quality'], errors='coerce').dropna().astype(int)
        return qualities.tail(limit).tolist()

    def clear(self):
        self.df = pd.DataFrame(columns=list(self.columns))
        self.save_data()
