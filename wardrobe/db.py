"""
User record store: an in-memory implementation and a SQLAlchemy-backed
durable implementation sharing one interface.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
import uuid
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import JSON, Column, Float, String, create_engine, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from wardrobe.errors import ConflictError, NotFoundError
from wardrobe.locks import KeyedLock

logger = logging.getLogger(__name__)

GARMENT_CATEGORIES = ("tops", "bottoms", "shoes", "accessories", "dresses")
OUTFIT_COLLECTIONS = ("outfits", "crushes")
ALL_COLLECTIONS = GARMENT_CATEGORIES + OUTFIT_COLLECTIONS
# Order in which outfits list their parts on the wire.
OUTFIT_PARTS = ("tops", "bottoms", "dresses", "shoes", "accessories")


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def synthesized_email(user_id: str) -> str:
    return f"user_{user_id}@example.com"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a client-supplied timestamp.

    Accepts datetimes, ISO-8601 strings (with or without a trailing ``Z``) and
    epoch milliseconds. Naive values are treated as UTC. Returns None for
    anything unparseable, including epoch values out of the platform's range.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _entry_id(data: dict) -> str:
    # Older clients send Mongo-style ``_id`` keys.
    return _text(data.get("id") or data.get("_id"))


@dataclass
class ItemRecord:
    filename: str = ""
    name: str = ""
    brand: str = ""
    price: str = ""
    added_at: datetime = field(default_factory=utcnow)
    id: str = ""

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "name": self.name,
            "brand": self.brand,
            "price": self.price,
            "addedAt": self.added_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ItemRecord":
        added_at = parse_timestamp(data.get("addedAt") or data.get("added_at"))
        return cls(
            filename=_text(data.get("filename")),
            name=_text(data.get("name")),
            brand=_text(data.get("brand")),
            price=_text(data.get("price")),
            added_at=added_at or utcnow(),
            id=_entry_id(data),
        )


def _as_part(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return copy.deepcopy(value)
    return [copy.deepcopy(value)]


@dataclass
class OutfitRecord:
    """An outfit embeds item snapshots (or identifiers) by value."""

    tops: list = field(default_factory=list)
    bottoms: list = field(default_factory=list)
    dresses: list = field(default_factory=list)
    shoes: list = field(default_factory=list)
    accessories: list = field(default_factory=list)
    date: Optional[datetime] = None
    id: str = ""

    def parts(self) -> dict:
        return {part: copy.deepcopy(getattr(self, part)) for part in OUTFIT_PARTS}

    def as_dict(self) -> dict:
        payload = self.parts()
        payload["date"] = self.date.isoformat() if self.date else None
        payload["id"] = self.id
        return payload

    @classmethod
    def from_dict(cls, data: dict) -> "OutfitRecord":
        # Accept both the stored (flat) shape and the {outfit, date} read shape.
        body = data.get("outfit") if isinstance(data.get("outfit"), dict) else data
        return cls(
            **{part: _as_part(body.get(part)) for part in OUTFIT_PARTS},
            date=parse_timestamp(data.get("date")),
            id=_entry_id(data),
        )


@dataclass
class UserRecord:
    id: str
    email: str
    tops: List[ItemRecord] = field(default_factory=list)
    bottoms: List[ItemRecord] = field(default_factory=list)
    shoes: List[ItemRecord] = field(default_factory=list)
    accessories: List[ItemRecord] = field(default_factory=list)
    dresses: List[ItemRecord] = field(default_factory=list)
    outfits: List[OutfitRecord] = field(default_factory=list)
    crushes: List[OutfitRecord] = field(default_factory=list)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def collection(self, name: str) -> list:
        return getattr(self, name)

    def as_dict(self) -> dict:
        payload: dict = {"id": self.id, "email": self.email}
        for name in ALL_COLLECTIONS:
            payload[name] = [entry.as_dict() for entry in self.collection(name)]
        payload["created_at"] = self.created_at
        payload["updated_at"] = self.updated_at
        return payload


class UserStore(Protocol):
    """Interface for user record persistence."""

    backend_name: str
    supports_provisioning: bool

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        ...

    def create(self, email: str) -> UserRecord:
        ...

    def find_or_create(self, email: str) -> UserRecord:
        ...

    def save(self, user: UserRecord) -> None:
        ...

    def ensure_exists(self, user_id: str) -> UserRecord:
        ...

    def list_users(self) -> list[UserRecord]:
        ...

    def lock(self, user_id: str) -> AbstractContextManager:
        ...


class InMemoryUserStore:
    """Process-lifetime store for development and tests."""

    backend_name = "memory"
    supports_provisioning = True

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.ids: Dict[str, str] = {}
        self._guard = threading.Lock()
        self.locks = KeyedLock()

    def lock(self, user_id: str) -> AbstractContextManager:
        return self.locks.hold(user_id)

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        return self.users.get(email)

    def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        email = self.ids.get(user_id)
        if email is None:
            return None
        return self.users.get(email)

    def _insert(self, user_id: str, email: str) -> UserRecord:
        # Caller holds self._guard.
        if email in self.users:
            raise ConflictError(f"User with email {email} already exists")
        if user_id in self.ids:
            raise ConflictError(f"User id {user_id} already exists")
        record = UserRecord(id=user_id, email=email)
        self.users[email] = record
        self.ids[user_id] = email
        logger.info("Created local user %s with id %s", email, user_id)
        return record

    def create(self, email: str) -> UserRecord:
        with self._guard:
            return self._insert(new_id(), email)

    def find_or_create(self, email: str) -> UserRecord:
        with self._guard:
            existing = self.users.get(email)
            if existing:
                return existing
            return self._insert(new_id(), email)

    def save(self, user: UserRecord) -> None:
        with self._guard:
            self.users[user.email] = user
            self.ids[user.id] = user.email
            user.updated_at = time.time()

    def ensure_exists(self, user_id: str) -> UserRecord:
        with self._guard:
            existing = self.find_by_id(user_id)
            if existing:
                return existing
            return self._insert(user_id, synthesized_email(user_id))

    def list_users(self) -> list[UserRecord]:
        return list(self.users.values())

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._guard:
            self.users.clear()
            self.ids.clear()


class PostgresUserStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Each user is one row; every collection is embedded as a JSON column.
    """

    backend_name = "postgres"
    supports_provisioning = False

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresUserStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self.locks = KeyedLock()
        Base.metadata.create_all(self.engine)

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def lock(self, user_id: str) -> AbstractContextManager:
        return self.locks.hold(user_id)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        record = UserRecord(
            id=row.id,
            email=row.email,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
        for name in GARMENT_CATEGORIES:
            setattr(record, name, [ItemRecord.from_dict(d) for d in getattr(row, name) or []])
        for name in OUTFIT_COLLECTIONS:
            setattr(record, name, [OutfitRecord.from_dict(d) for d in getattr(row, name) or []])
        return record

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            if not row:
                return None
            return self._to_user_record(row)

    def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            return self._to_user_record(row)

    def create(self, email: str) -> UserRecord:
        now = time.time()
        with self.Session() as session:
            row = UserRow(
                id=new_id(),
                email=email,
                created_at=now,
                updated_at=now,
                **{name: [] for name in ALL_COLLECTIONS},
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(f"User with email {email} already exists") from exc
            logger.info("Created user %s with id %s", email, row.id)
            return self._to_user_record(row)

    def find_or_create(self, email: str) -> UserRecord:
        existing = self.find_by_email(email)
        if existing:
            return existing
        try:
            return self.create(email)
        except ConflictError:
            # Lost a race with a concurrent create for the same email.
            existing = self.find_by_email(email)
            if existing:
                return existing
            raise

    def save(self, user: UserRecord) -> None:
        with self.Session() as session:
            row = session.get(UserRow, user.id)
            if not row:
                raise NotFoundError(f"User {user.id} not found")
            for name in ALL_COLLECTIONS:
                setattr(row, name, [entry.as_dict() for entry in user.collection(name)])
            user.updated_at = time.time()
            row.updated_at = user.updated_at
            session.commit()

    def ensure_exists(self, user_id: str) -> UserRecord:
        # The durable store never manufactures users from bare ids.
        record = self.find_by_id(user_id)
        if not record:
            raise NotFoundError(f"User {user_id} not found")
        return record

    def list_users(self) -> list[UserRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(UserRow).order_by(UserRow.created_at.asc())
            ).scalars()
            return [self._to_user_record(row) for row in rows]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    tops = Column(JSON, nullable=False, default=list)
    bottoms = Column(JSON, nullable=False, default=list)
    shoes = Column(JSON, nullable=False, default=list)
    accessories = Column(JSON, nullable=False, default=list)
    dresses = Column(JSON, nullable=False, default=list)
    outfits = Column(JSON, nullable=False, default=list)
    crushes = Column(JSON, nullable=False, default=list)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
