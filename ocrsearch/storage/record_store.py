"""SQLAlchemy-backed store for image text records.

The engine is created once per process and shared by every request; a
lock serializes sessions so a single SQLite connection can be used from
the threadpool. Concurrent edits of the same record are not coordinated:
the last write wins.
"""

import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    DateTime,
    Engine,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

from ocrsearch.errors import (
    PersistenceError,
    RecordNotFoundError,
    ValidationFailureError,
)
from ocrsearch.utils.logger import get_logger

from .models import ImageRecord

logger = get_logger(__name__)

MAX_LIMIT = 100


class Base(DeclarativeBase):
    pass


class ImageRow(Base):
    """One stored image and its extracted text."""

    __tablename__ = "images"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    image: Mapped[str] = mapped_column(String(255), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


def engine_url(database_url: str) -> str:
    """Normalize a configured database location into an SQLAlchemy URL.

    ``:memory:`` and bare filesystem paths are treated as SQLite.
    """
    if database_url in ("", ":memory:"):
        return "sqlite://"
    if "://" not in database_url:
        return f"sqlite:///{database_url}"
    return database_url


def _fold(value: str | None) -> str | None:
    return value.lower() if value is not None else None


def create_database_engine(database_url: str) -> Engine:
    """Create the process-wide engine and make sure the schema exists.

    Raises:
        PersistenceError: If the database cannot be opened or initialized.
    """
    url = make_url(engine_url(database_url))
    options: dict = {}
    if url.get_backend_name() == "sqlite":
        if url.database in (None, "", ":memory:"):
            options = {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    try:
        engine = create_engine(url, **options)
        if engine.dialect.name == "sqlite":
            # SQLite's lower() only folds ASCII letters.
            @event.listens_for(engine, "connect")
            def _register_fold(dbapi_connection, _connection_record) -> None:
                dbapi_connection.create_function("fold", 1, _fold, deterministic=True)

        Base.metadata.create_all(engine)
    except SQLAlchemyError as exc:
        raise PersistenceError("Database connection failed", detail=str(exc)) from exc
    logger.info("Database ready at %s", url.render_as_string(hide_password=True))
    return engine


def clamp_limit(limit: int | None) -> int:
    """Cap list sizes to ``MAX_LIMIT``; ``None`` means the cap."""
    if limit is None:
        return MAX_LIMIT
    return max(1, min(limit, MAX_LIMIT))


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands timestamps back without their zone; they are stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: ImageRow) -> ImageRecord:
    return ImageRecord(
        id=row.id,
        image_ref=row.image,
        text=row.text,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _not_found(record_id: str) -> RecordNotFoundError:
    return RecordNotFoundError("Image not found", detail=f"id={record_id}")


class RecordStore:
    """CRUD and substring search over :class:`ImageRecord` rows.

    Args:
        engine: Engine from :func:`create_database_engine`. The caller owns
            it and disposes it on shutdown.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)
        self._lock = threading.Lock()
        self._casefold = func.fold if engine.dialect.name == "sqlite" else func.lower

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        with self._lock:
            try:
                with self._sessions.begin() as session:
                    yield session
            except SQLAlchemyError as exc:
                detail = str(getattr(exc, "orig", None) or exc)
                logger.error("Database %s failed: %s", action, detail)
                raise PersistenceError(
                    f"Database {action} failed", detail=detail
                ) from exc

    def _newest_first(self, limit: int | None):
        return (
            select(ImageRow)
            .order_by(ImageRow.created_at.desc(), ImageRow.seq.desc())
            .limit(clamp_limit(limit))
        )

    def _get_row(self, session: Session, record_id: str) -> ImageRow:
        row = session.scalar(select(ImageRow).where(ImageRow.id == record_id))
        if row is None:
            raise _not_found(record_id)
        return row

    def create(self, image_ref: str, text: str) -> ImageRecord:
        """Insert a new record and return it."""
        row = ImageRow(
            id=uuid.uuid4().hex,
            image=image_ref,
            text=text,
            created_at=datetime.now(timezone.utc),
        )
        with self._session("insert") as session:
            session.add(row)
        return _to_record(row)

    def find_all(self, limit: int | None = MAX_LIMIT) -> list[ImageRecord]:
        """Return the most recent records, newest first."""
        with self._session("query") as session:
            rows = session.scalars(self._newest_first(limit)).all()
            return [_to_record(row) for row in rows]

    def find_by_text_substring(
        self, query: str, limit: int | None = MAX_LIMIT
    ) -> list[ImageRecord]:
        """Return records whose text contains ``query``, ignoring case.

        The query is matched literally; ``%`` and ``_`` are not wildcards.
        """
        folded = self._casefold(ImageRow.text, type_=Text)
        condition = folded.contains(query.lower(), autoescape=True)
        with self._session("search") as session:
            rows = session.scalars(self._newest_first(limit).where(condition)).all()
            return [_to_record(row) for row in rows]

    def find_by_id(self, record_id: str) -> ImageRecord:
        """Fetch one record.

        Raises:
            RecordNotFoundError: if no record with this ID exists.
        """
        with self._session("query") as session:
            return _to_record(self._get_row(session, record_id))

    def update(self, record_id: str, text: str) -> ImageRecord:
        """Replace a record's text with its trimmed value.

        Raises:
            ValidationFailureError: if the text is blank.
            RecordNotFoundError: if no record with this ID exists.
        """
        text = (text or "").strip()
        if not text:
            raise ValidationFailureError("Text is required")

        with self._session("update") as session:
            row = self._get_row(session, record_id)
            row.text = text
            row.updated_at = datetime.now(timezone.utc)
        return _to_record(row)

    def delete(self, record_id: str) -> ImageRecord:
        """Remove a record and return what was deleted.

        Raises:
            RecordNotFoundError: if no record with this ID exists.
        """
        with self._session("delete") as session:
            row = self._get_row(session, record_id)
            record = _to_record(row)
            session.delete(row)
        return record

    def count(self) -> int:
        """Return the total number of stored records."""
        with self._session("query") as session:
            return int(session.scalar(select(func.count()).select_from(ImageRow)))
