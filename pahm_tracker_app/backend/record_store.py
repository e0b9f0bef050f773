# backend/record_store.py
"""
Per-user record store for practice sessions, emotional notes, the onboarding
questionnaire and the attachment self-assessment.

Defaults to the database backend (SQLite unless DATABASE_URL says otherwise).
Set USE_CSV=1 for CSV files under data/. Every record is validated on the way
in, so readers only ever see canonical, type-correct records.
"""
import json
import os
import random
import string
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
from dotenv import load_dotenv

from backend.practice_schema import EmotionalNote, PracticeSession, Questionnaire, SelfAssessment
from backend.validation import (
    InvalidRecord,
    note_from_dict,
    questionnaire_from_dict,
    self_assessment_from_dict,
    session_from_dict,
    validate_record_id,
    validate_user_id,
)


load_dotenv(Path(__file__).resolve().parent.parent / ".env")

DATA_DIR = os.path.join(Path(__file__).resolve().parent.parent, "data")

COLLECTIONS = ('sessions', 'notes', 'questionnaire', 'self_assessment')

_RECORD_COLUMNS = ['record_id', 'user_id', 'timestamp', 'payload']
_MARKER_COLUMNS = ['user_id', 'collection', 'version', 'modified_at']


def _env_flag(name: str) -> bool:
    return os.getenv(name, '').lower() in ('1', 'true', 'yes')


def _generate_id(prefix: str) -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(datetime.utcnow().timestamp() * 1000)}_{suffix}"


class PracticeRecordStore:
    """Record store for one app instance. Supports both database and CSV backends."""

    def __init__(self, data_dir: Optional[str] = None, database_url: Optional[str] = None):
        self.data_dir = data_dir or DATA_DIR

        use_csv = _env_flag('USE_CSV')
        self.use_db = not use_csv
        if self.use_db and not database_url and not os.getenv('DATABASE_URL'):
            os.environ['DATABASE_URL'] = 'sqlite:///data/pahm_tracker.db'

        # Strict mode: If DISABLE_CSV_FALLBACK is set, fail instead of falling back to CSV
        self.strict_mode = _env_flag('DISABLE_CSV_FALLBACK')

        if self.use_db:
            try:
                self._init_db(database_url)
                if not getattr(PracticeRecordStore, '_printed_backend', False):
                    print("[RecordStore] Using database backend")
                    PracticeRecordStore._printed_backend = True
            except Exception as e:
                if self.strict_mode:
                    raise RuntimeError(
                        f"Database initialization failed and CSV fallback is disabled: {e}\n"
                        "Set DISABLE_CSV_FALLBACK=false or unset DATABASE_URL to allow CSV fallback."
                    ) from e
                print(f"[RecordStore] Database initialization failed: {e}, falling back to CSV")
                self.use_db = False
                self._init_csv()
        else:
            if self.strict_mode:
                raise RuntimeError(
                    "CSV backend is disabled (DISABLE_CSV_FALLBACK is set) but USE_CSV is set.\n"
                    "Please unset USE_CSV to use the database backend, or unset DISABLE_CSV_FALLBACK."
                )
            self._init_csv()
            print("[RecordStore] Using CSV backend")

    # ------------------------------------------------------------------
    # Backend setup
    # ------------------------------------------------------------------

    def _init_db(self, database_url: Optional[str]):
        from backend import database
        from sqlalchemy.orm import sessionmaker

        if database_url:
            bind = database.make_engine(database_url)
            self.db_session = sessionmaker(bind=bind, autocommit=False, autoflush=False)
            database.init_db(bind=bind, database_url=database_url)
        else:
            self.db_session = database.get_session
            database.init_db()
        self.models = database

    def _init_csv(self):
        os.makedirs(self.data_dir, exist_ok=True)
        self.files = {
            'sessions': os.path.join(self.data_dir, 'practice_sessions.csv'),
            'notes': os.path.join(self.data_dir, 'emotional_notes.csv'),
            'questionnaire': os.path.join(self.data_dir, 'questionnaires.csv'),
            'self_assessment': os.path.join(self.data_dir, 'self_assessments.csv'),
            'markers': os.path.join(self.data_dir, 'collection_markers.csv'),
        }
        for name, path in self.files.items():
            if not os.path.exists(path):
                columns = _MARKER_COLUMNS if name == 'markers' else _RECORD_COLUMNS
                pd.DataFrame(columns=columns).to_csv(path, index=False)

    def _read_csv(self, name: str) -> pd.DataFrame:
        return pd.read_csv(self.files[name], dtype=str).fillna('')

    def _write_csv(self, name: str, df: pd.DataFrame):
        df.to_csv(self.files[name], index=False)

    # ------------------------------------------------------------------
    # Last-modified markers
    # ------------------------------------------------------------------

    def _touch(self, user_id: str, collection: str):
        now = datetime.utcnow()
        if self.use_db:
            Marker = self.models.CollectionMarker
            with self.db_session() as session:
                marker = session.get(Marker, (user_id, collection))
                if marker is None:
                    marker = Marker(user_id=user_id, collection=collection, version=0)
                    session.add(marker)
                marker.version = (marker.version or 0) + 1
                marker.modified_at = now
                session.commit()
        else:
            df = self._read_csv('markers')
            mask = (df['user_id'] == user_id) & (df['collection'] == collection)
            if mask.any():
                version = int(df.loc[mask, 'version'].iloc[0]) + 1
                df.loc[mask, 'version'] = str(version)
                df.loc[mask, 'modified_at'] = now.isoformat()
            else:
                row = {'user_id': user_id, 'collection': collection,
                       'version': '1', 'modified_at': now.isoformat()}
                df = pd.concat([df, pd.DataFrame([row])], ignore_index=True)
            self._write_csv('markers', df)

    def get_last_modified(self, user_id: str) -> Dict[str, Optional[str]]:
        """Marker string per collection; None for collections never written."""
        user_id = validate_user_id(user_id)
        markers: Dict[str, Optional[str]] = {name: None for name in COLLECTIONS}
        if self.use_db:
            Marker = self.models.CollectionMarker
            with self.db_session() as session:
                for marker in session.query(Marker).filter(Marker.user_id == user_id).all():
                    markers[marker.collection] = marker.marker()
        else:
            df = self._read_csv('markers')
            for _, row in df[df['user_id'] == user_id].iterrows():
                markers[row['collection']] = f"{row['version']}:{row['modified_at']}"
        return markers

    # ------------------------------------------------------------------
    # Append-only collections (sessions, notes)
    # ------------------------------------------------------------------

    def _append(self, user_id: str, collection: str, model_name: str, id_column: str,
                record: Any, extra: Dict[str, Any]):
        payload = record.to_dict()
        if self.use_db:
            Model = getattr(self.models, model_name)
            with self.db_session() as session:
                if session.get(Model, record.id) is not None:
                    raise InvalidRecord(collection.rstrip('s'), 'id', f"{record.id!r} already exists")
                session.add(Model(**{id_column: record.id}, user_id=user_id,
                                  timestamp=payload['timestamp'], payload=payload, **extra))
                session.commit()
        else:
            df = self._read_csv(collection)
            if (df['record_id'] == record.id).any():
                raise InvalidRecord(collection.rstrip('s'), 'id', f"{record.id!r} already exists")
            row = {'record_id': record.id, 'user_id': user_id,
                   'timestamp': payload['timestamp'], 'payload': json.dumps(payload)}
            df = pd.concat([df, pd.DataFrame([row])], ignore_index=True)
            self._write_csv(collection, df)
        self._touch(user_id, collection)

    def _load_all(self, user_id: str, collection: str, model_name: str,
                  parse: Callable[[Dict[str, Any]], Any]) -> List[Any]:
        if self.use_db:
            Model = getattr(self.models, model_name)
            with self.db_session() as session:
                rows = session.query(Model).filter(Model.user_id == user_id).all()
                raw = [row.to_dict() for row in rows]
        else:
            df = self._read_csv(collection)
            raw = [json.loads(p) for p in df.loc[df['user_id'] == user_id, 'payload']]
        records = [parse(item) for item in raw]
        records.sort(key=lambda r: (r.timestamp, r.id))
        return records

    def _delete(self, user_id: str, collection: str, model_name: str, record_id: str) -> bool:
        deleted = False
        if self.use_db:
            Model = getattr(self.models, model_name)
            with self.db_session() as session:
                row = session.get(Model, record_id)
                if row is not None and row.user_id == user_id:
                    session.delete(row)
                    session.commit()
                    deleted = True
        else:
            df = self._read_csv(collection)
            mask = (df['record_id'] == record_id) & (df['user_id'] == user_id)
            if mask.any():
                self._write_csv(collection, df[~mask])
                deleted = True
        if deleted:
            self._touch(user_id, collection)
        return deleted

    def add_session(self, user_id: str, data: Dict[str, Any]) -> PracticeSession:
        """Validate and store a completed session. Returns the stored session.

        Raises:
            InvalidRecord: If the session is structurally invalid or its id is taken
        """
        user_id = validate_user_id(user_id)
        data = dict(data)
        data.setdefault('id', _generate_id('session'))
        data.setdefault('timestamp', datetime.now(timezone.utc).isoformat())
        session = session_from_dict(data)
        self._append(user_id, 'sessions', 'PracticeSessionRecord', 'session_id', session, {
            'session_type': session.session_type,
            'duration_minutes': session.duration_minutes,
        })
        return session

    def get_sessions(self, user_id: str) -> List[PracticeSession]:
        """All sessions of a user, oldest first."""
        user_id = validate_user_id(user_id)
        return self._load_all(user_id, 'sessions', 'PracticeSessionRecord', session_from_dict)

    def delete_session(self, user_id: str, session_id: str) -> bool:
        user_id = validate_user_id(user_id)
        return self._delete(user_id, 'sessions', 'PracticeSessionRecord',
                            validate_record_id('session', session_id))

    def add_note(self, user_id: str, data: Dict[str, Any]) -> EmotionalNote:
        user_id = validate_user_id(user_id)
        data = dict(data)
        data.setdefault('id', _generate_id('note'))
        data.setdefault('timestamp', datetime.now(timezone.utc).isoformat())
        note = note_from_dict(data)
        self._append(user_id, 'notes', 'EmotionalNoteRecord', 'note_id', note, {})
        return note

    def get_notes(self, user_id: str) -> List[EmotionalNote]:
        user_id = validate_user_id(user_id)
        # Stored content is already escaped
        return self._load_all(user_id, 'notes', 'EmotionalNoteRecord',
                              lambda item: note_from_dict(item, sanitize=False))

    def delete_note(self, user_id: str, note_id: str) -> bool:
        user_id = validate_user_id(user_id)
        return self._delete(user_id, 'notes', 'EmotionalNoteRecord', validate_record_id('note', note_id))

    # ------------------------------------------------------------------
    # Single-record collections (questionnaire, self-assessment)
    # ------------------------------------------------------------------

    def _load_single(self, user_id: str, collection: str, model_name: str) -> Optional[Dict[str, Any]]:
        if self.use_db:
            Model = getattr(self.models, model_name)
            with self.db_session() as session:
                row = session.get(Model, user_id)
                return row.to_dict() if row is not None else None
        df = self._read_csv(collection)
        match = df.loc[df['user_id'] == user_id, 'payload']
        return json.loads(match.iloc[0]) if len(match) else None

    def _save_single(self, user_id: str, collection: str, model_name: str, record: Any):
        payload = record.to_dict()
        if self.use_db:
            Model = getattr(self.models, model_name)
            with self.db_session() as session:
                row = session.get(Model, user_id)
                if row is None:
                    row = Model(user_id=user_id)
                    session.add(row)
                row.completed = record.completed
                row.completed_at = record.completed_at
                row.payload = payload
                session.commit()
        else:
            df = self._read_csv(collection)
            df = df[df['user_id'] != user_id]
            row = {'record_id': user_id, 'user_id': user_id,
                   'timestamp': payload.get('completed_at') or '', 'payload': json.dumps(payload)}
            df = pd.concat([df, pd.DataFrame([row])], ignore_index=True)
            self._write_csv(collection, df)
        self._touch(user_id, collection)

    def _first_completion(self, previous: Optional[Dict[str, Any]], data: Dict[str, Any]) -> Dict[str, Any]:
        # completed flips to true once; later saves keep the original completion time
        data = dict(data)
        if previous and previous.get('completed') and previous.get('completed_at'):
            data['completed'] = True
            data['completed_at'] = previous['completed_at']
        elif data.get('completed', True) and not (data.get('completed_at') or data.get('completedAt')):
            data['completed_at'] = datetime.now(timezone.utc).isoformat()
        return data

    def save_questionnaire(self, user_id: str, data: Dict[str, Any]) -> Questionnaire:
        """Create or overwrite the user's questionnaire. There is only ever one record."""
        user_id = validate_user_id(user_id)
        previous = self._load_single(user_id, 'questionnaire', 'QuestionnaireRecord')
        questionnaire = questionnaire_from_dict(self._first_completion(previous, data))
        self._save_single(user_id, 'questionnaire', 'QuestionnaireRecord', questionnaire)
        return questionnaire

    def get_questionnaire(self, user_id: str) -> Optional[Questionnaire]:
        user_id = validate_user_id(user_id)
        raw = self._load_single(user_id, 'questionnaire', 'QuestionnaireRecord')
        return questionnaire_from_dict(raw) if raw is not None else None

    def save_self_assessment(self, user_id: str, data: Dict[str, Any]) -> SelfAssessment:
        """Create or overwrite the user's self-assessment from any of its accepted views."""
        user_id = validate_user_id(user_id)
        previous = self._load_single(user_id, 'self_assessment', 'SelfAssessmentRecord')
        assessment = self_assessment_from_dict(self._first_completion(previous, data))
        self._save_single(user_id, 'self_assessment', 'SelfAssessmentRecord', assessment)
        return assessment

    def get_self_assessment(self, user_id: str) -> Optional[SelfAssessment]:
        user_id = validate_user_id(user_id)
        raw = self._load_single(user_id, 'self_assessment', 'SelfAssessmentRecord')
        return self_assessment_from_dict(raw) if raw is not None else None
