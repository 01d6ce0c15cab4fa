"""Relational persistence for users over a single shared connection."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, Engine, RowMapping, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .config import Settings
from .errors import DuplicateEmailError, StoreError, ValidationError
from .models import User

logger = logging.getLogger("users_api.database")

# MySQL ER_DUP_ENTRY
_MYSQL_DUPLICATE_ENTRY = 1062

_SCHEMA = {
    "mysql": """
        CREATE TABLE IF NOT EXISTS users (
            id INT AUTO_INCREMENT PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(255) UNIQUE NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "sqlite": """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT UNIQUE NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}


def build_database_url(settings: Settings) -> URL:
    """Return the connection URL described by ``settings``."""

    if settings.database_url:
        return make_url(settings.database_url)
    return URL.create(
        "mysql+pymysql",
        username=settings.db_user,
        password=settings.db_password,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
    )


def _parse_datetime(value: Union[str, datetime]) -> datetime:
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_duplicate_key(exc: IntegrityError) -> bool:
    original = exc.orig
    args = getattr(original, "args", ())
    if args and args[0] == _MYSQL_DUPLICATE_ENTRY:
        return True
    if getattr(original, "sqlite_errorname", None) == "SQLITE_CONSTRAINT_UNIQUE":
        return True
    return "UNIQUE constraint failed" in str(original)


class Database:
    """Owns one connection to the store and runs parameterized statements on it.

    All statements run in autocommit mode and are serialized by a lock, so the
    connection can be shared by every request handler.
    """

    def __init__(self, url: Union[URL, str]) -> None:
        self._url = make_url(url) if isinstance(url, str) else url
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(build_database_url(settings))

    @property
    def url(self) -> URL:
        return self._url

    @property
    def dialect(self) -> str:
        return self._url.get_backend_name()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def _create_engine(self) -> Engine:
        connect_args: dict = {}
        if self.dialect == "sqlite":
            connect_args["check_same_thread"] = False
        elif self.dialect == "mysql":
            connect_args["connect_timeout"] = 10
        return create_engine(self._url, poolclass=StaticPool, connect_args=connect_args)

    def connect(self) -> Connection:
        """Open the shared connection. Raises :class:`StoreError` on failure."""

        with self._lock:
            if self._connection is not None:
                return self._connection
            engine = self._create_engine()
            try:
                connection = engine.connect().execution_options(isolation_level="AUTOCOMMIT")
            except SQLAlchemyError as exc:
                engine.dispose()
                raise StoreError(
                    f"Unable to connect to {self._url.render_as_string(hide_password=True)}"
                ) from exc
            self._engine = engine
            self._connection = connection

        logger.info("Connected to %s database at %s", self.dialect, self._url.render_as_string(hide_password=True))
        return connection

    def initialize(self) -> None:
        """Create the ``users`` table if it does not already exist."""

        ddl = _SCHEMA.get(self.dialect)
        if ddl is None:
            raise StoreError(f"Unsupported database backend '{self.dialect}'")
        with self._session() as conn:
            conn.execute(text(ddl))
        logger.info("Database table ready")

    def close(self) -> None:
        with self._lock:
            connection, engine = self._connection, self._engine
            self._connection = None
            self._engine = None
        if connection is not None:
            try:
                connection.close()
            finally:
                if engine is not None:
                    engine.dispose()
            logger.info("Database connection closed")

    @contextmanager
    def _session(self) -> Iterator[Connection]:
        with self._lock:
            if self._connection is None:
                raise StoreError("Database connection is not open")
            try:
                yield self._connection
            except SQLAlchemyError as exc:
                raise StoreError("Database statement failed") from exc

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def list_users(self) -> List[User]:
        """Return every user, newest first."""

        with self._session() as conn:
            rows = conn.execute(
                text("SELECT id, name, email, created_at FROM users ORDER BY created_at DESC, id DESC")
            ).mappings().all()
        return [self._row_to_user(row) for row in rows]

    def get_user(self, user_id: int) -> Optional[User]:
        with self._session() as conn:
            row = conn.execute(
                text("SELECT id, name, email, created_at FROM users WHERE id = :id"),
                {"id": user_id},
            ).mappings().first()
        if row is None:
            return None
        return self._row_to_user(row)

    def create_user(self, name: str, email: str) -> User:
        """Insert a user and return the stored row.

        Raises :class:`DuplicateEmailError` when ``email`` is already taken.
        """

        if not name or not email:
            raise ValidationError("Name and email are required")

        with self._session() as conn:
            try:
                result = conn.execute(
                    text("INSERT INTO users (name, email) VALUES (:name, :email)"),
                    {"name": name, "email": email},
                )
            except IntegrityError as exc:
                if _is_duplicate_key(exc):
                    raise DuplicateEmailError(email) from exc
                raise

            user_id = result.lastrowid
            row = conn.execute(
                text("SELECT id, name, email, created_at FROM users WHERE id = :id"),
                {"id": user_id},
            ).mappings().first()

        if row is None:
            raise StoreError("Inserted user could not be read back")
        return self._row_to_user(row)

    def delete_user(self, user_id: int) -> bool:
        """Delete the user and report whether a row was removed."""

        with self._session() as conn:
            result = conn.execute(text("DELETE FROM users WHERE id = :id"), {"id": user_id})
        return result.rowcount > 0

    @staticmethod
    def _row_to_user(row: RowMapping) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(row["created_at"]),
        )


__all__ = ["Database", "build_database_url"]
