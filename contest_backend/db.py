"""
Entry record store: SQLAlchemy-backed implementation and an in-memory test double.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, Optional, Protocol, Union

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, select, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from contest_backend.errors import DependencyUnavailable, NotFound
from contest_backend.schemas import (
    DeckEntry,
    PaymentStatus,
    ReviewStatus,
    TextEntry,
    VideoEntry,
    parse_entry,
    utcnow,
)

logger = logging.getLogger(__name__)

AnyEntry = Union[TextEntry, DeckEntry, VideoEntry]

ENTRY_VARIANTS = {
    "text": TextEntry,
    "pitch-deck": DeckEntry,
    "video": VideoEntry,
}


class EntryStore(Protocol):
    """Interface for entry persistence. Performs no authorization."""

    def insert(self, entry: AnyEntry) -> "EntryRecord":
        ...

    def insert_if_absent(self, entry: AnyEntry) -> tuple["EntryRecord", bool]:
        ...

    def find_by_owner(self, user_id: str) -> list["EntryRecord"]:
        ...

    def find_by_id(self, entry_id: str) -> "EntryRecord":
        ...

    def find_by_payment_intent(self, payment_intent_id: str) -> Optional["EntryRecord"]:
        ...

    def delete_by_id(self, entry_id: str) -> None:
        ...

    def mark_payment_failed(self, payment_intent_id: str) -> bool:
        ...

    def update_review_status(
        self, entry_id: str, status: ReviewStatus
    ) -> "EntryRecord":
        ...

    def ping(self) -> bool:
        ...


@dataclass
class EntryRecord:
    entry_id: str
    entry: AnyEntry
    created_at: datetime
    updated_at: datetime

    def as_dict(self) -> dict:
        data = self.entry.model_dump()
        data.update(
            id=self.entry_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
        return data


def _new_entry_id() -> str:
    return uuid.uuid4().hex


class InMemoryEntryStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.records: Dict[str, EntryRecord] = {}
        self._order: Dict[str, int] = {}
        self._counter = itertools.count()

    def insert(self, entry: AnyEntry) -> EntryRecord:
        entry = parse_entry(entry.model_dump())
        now = utcnow()
        record = EntryRecord(
            entry_id=_new_entry_id(), entry=entry, created_at=now, updated_at=now
        )
        self.records[record.entry_id] = record
        self._order[record.entry_id] = next(self._counter)
        return record

    def insert_if_absent(self, entry: AnyEntry) -> tuple[EntryRecord, bool]:
        existing = self.find_by_payment_intent(entry.payment_intent_id)
        if existing:
            return existing, False
        return self.insert(entry), True

    def find_by_owner(self, user_id: str) -> list[EntryRecord]:
        owned = [r for r in self.records.values() if r.entry.user_id == user_id]
        owned.sort(
            key=lambda r: (r.created_at, self._order[r.entry_id]), reverse=True
        )
        return owned

    def find_by_id(self, entry_id: str) -> EntryRecord:
        record = self.records.get(entry_id)
        if record is None:
            raise NotFound("Entry not found")
        return record

    def find_by_payment_intent(self, payment_intent_id: str) -> Optional[EntryRecord]:
        for record in self.records.values():
            if record.entry.payment_intent_id == payment_intent_id:
                return record
        return None

    def delete_by_id(self, entry_id: str) -> None:
        if self.records.pop(entry_id, None) is None:
            raise NotFound("Entry not found")
        self._order.pop(entry_id, None)

    def mark_payment_failed(self, payment_intent_id: str) -> bool:
        record = self.find_by_payment_intent(payment_intent_id)
        if record is None:
            return False
        record.entry = record.entry.model_copy(
            update={"payment_status": PaymentStatus.FAILED.value}
        )
        record.updated_at = utcnow()
        return True

    def update_review_status(self, entry_id: str, status: ReviewStatus) -> EntryRecord:
        record = self.find_by_id(entry_id)
        record.entry = record.entry.model_copy(
            update={"status": ReviewStatus(status).value}
        )
        record.updated_at = utcnow()
        return record

    def ping(self) -> bool:
        return True

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.records.clear()
        self._order.clear()


class SqlEntryStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, *, connect_timeout: int = 5):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlEntryStore")
        engine_kwargs: dict = {"pool_pre_ping": True, "pool_recycle": 1800}
        if database_url.startswith("postgresql"):
            engine_kwargs["connect_args"] = {"connect_timeout": connect_timeout}
            engine_kwargs["pool_timeout"] = connect_timeout
        elif database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection so every thread sees the same database.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, future=True, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        try:
            Base.metadata.create_all(self.engine)
        except OperationalError as exc:
            # The app still starts; requests report 503 until the database is back.
            logger.error("Could not create entry tables: %s", exc)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except OperationalError as exc:
            logger.error("Database unavailable: %s", exc)
            raise DependencyUnavailable("Database unavailable") from exc

    def _to_record(self, row: "EntryRow") -> EntryRecord:
        variant = ENTRY_VARIANTS[row.entry_type]
        data = {
            name: getattr(row, name)
            for name in variant.model_fields
            if getattr(row, name, None) is not None
        }
        return EntryRecord(
            entry_id=row.id,
            entry=variant.model_validate(data),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _new_row(self, entry: AnyEntry) -> "EntryRow":
        entry = parse_entry(entry.model_dump())
        now = utcnow()
        return EntryRow(
            id=_new_entry_id(), created_at=now, updated_at=now, **entry.model_dump()
        )

    def insert(self, entry: AnyEntry) -> EntryRecord:
        row = self._new_row(entry)
        with self._session() as session:
            session.add(row)
            session.commit()
            return self._to_record(row)

    def insert_if_absent(self, entry: AnyEntry) -> tuple[EntryRecord, bool]:
        existing = self.find_by_payment_intent(entry.payment_intent_id)
        if existing:
            return existing, False
        row = self._new_row(entry)
        with self._session() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Lost a race with a concurrent submission for the same intent.
                session.rollback()
                winner = self.find_by_payment_intent(entry.payment_intent_id)
                if winner is None:
                    raise
                return winner, False
            return self._to_record(row), True

    def find_by_owner(self, user_id: str) -> list[EntryRecord]:
        with self._session() as session:
            stmt = (
                select(EntryRow)
                .where(EntryRow.user_id == user_id)
                .order_by(EntryRow.created_at.desc())
            )
            return [self._to_record(row) for row in session.execute(stmt).scalars()]

    def find_by_id(self, entry_id: str) -> EntryRecord:
        with self._session() as session:
            row = session.get(EntryRow, entry_id)
            if not row:
                raise NotFound("Entry not found")
            return self._to_record(row)

    def find_by_payment_intent(self, payment_intent_id: str) -> Optional[EntryRecord]:
        with self._session() as session:
            stmt = select(EntryRow).where(
                EntryRow.payment_intent_id == payment_intent_id
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_record(row) if row else None

    def delete_by_id(self, entry_id: str) -> None:
        with self._session() as session:
            row = session.get(EntryRow, entry_id)
            if not row:
                raise NotFound("Entry not found")
            session.delete(row)
            session.commit()

    def mark_payment_failed(self, payment_intent_id: str) -> bool:
        with self._session() as session:
            stmt = select(EntryRow).where(
                EntryRow.payment_intent_id == payment_intent_id
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return False
            row.payment_status = PaymentStatus.FAILED.value
            row.updated_at = utcnow()
            session.commit()
            return True

    def update_review_status(self, entry_id: str, status: ReviewStatus) -> EntryRecord:
        with self._session() as session:
            row = session.get(EntryRow, entry_id)
            if not row:
                raise NotFound("Entry not found")
            row.status = ReviewStatus(status).value
            row.updated_at = utcnow()
            session.commit()
            return self._to_record(row)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except OperationalError:
            return False


Base = declarative_base()


class EntryRow(Base):
    __tablename__ = "entries"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    entry_type = Column(String, nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=True)
    text_content = Column(Text, nullable=True)
    file_data = Column(Text, nullable=True)
    file_name = Column(String, nullable=True)
    file_type = Column(String, nullable=True)
    file_size = Column(Integer, nullable=True)
    file_url = Column(String, nullable=True)
    file_path = Column(String, nullable=True)
    video_url = Column(String, nullable=True)
    entry_fee = Column(Integer, nullable=False)
    surcharge = Column(Integer, nullable=False)
    total_amount = Column(Integer, nullable=False)
    payment_intent_id = Column(String, nullable=False, unique=True, index=True)
    payment_status = Column(String, nullable=False, default="pending")
    status = Column(String, nullable=False, default="submitted", index=True)
    submission_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
