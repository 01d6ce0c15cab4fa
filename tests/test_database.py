from __future__ import annotations

from pathlib import Path

import pytest

from users_api.config import Settings
from users_api.database import Database, build_database_url
from users_api.errors import DuplicateEmailError, StoreError, ValidationError


@pytest.fixture()
def database(tmp_path: Path):
    db = Database(f"sqlite:///{tmp_path / 'users.sqlite3'}")
    db.connect()
    db.initialize()
    yield db
    db.close()


def test_create_and_get_user(database: Database) -> None:
    user = database.create_user("Alice", "alice@example.com")

    assert user.id > 0
    assert user.name == "Alice"
    assert user.email == "alice@example.com"
    assert user.created_at.tzinfo is not None

    fetched = database.get_user(user.id)
    assert fetched == user


def test_get_missing_user_returns_none(database: Database) -> None:
    assert database.get_user(999) is None


def test_duplicate_email_is_a_conflict(database: Database) -> None:
    database.create_user("Alice", "alice@example.com")

    with pytest.raises(DuplicateEmailError):
        database.create_user("Alice Again", "alice@example.com")

    assert [user.email for user in database.list_users()] == ["alice@example.com"]


def test_create_user_requires_name_and_email(database: Database) -> None:
    with pytest.raises(ValidationError):
        database.create_user("", "nobody@example.com")
    with pytest.raises(ValidationError):
        database.create_user("Nobody", "")

    assert database.list_users() == []


def test_list_users_newest_first(database: Database) -> None:
    first = database.create_user("First", "first@example.com")
    second = database.create_user("Second", "second@example.com")
    third = database.create_user("Third", "third@example.com")

    assert [user.id for user in database.list_users()] == [third.id, second.id, first.id]


def test_delete_user_reports_whether_a_row_was_removed(database: Database) -> None:
    user = database.create_user("Bob", "bob@example.com")

    assert database.delete_user(user.id) is True
    assert database.get_user(user.id) is None
    assert database.delete_user(user.id) is False


def test_sql_metacharacters_are_stored_literally(database: Database) -> None:
    email = "robert'); DROP TABLE users; --@example.com"
    user = database.create_user("Robert", email)

    assert database.get_user(user.id).email == email
    assert len(database.list_users()) == 1


def test_initialize_is_idempotent(database: Database) -> None:
    database.create_user("Carol", "carol@example.com")
    database.initialize()

    assert len(database.list_users()) == 1


def test_statements_after_close_raise_store_error(database: Database) -> None:
    database.close()
    assert database.is_connected is False

    with pytest.raises(StoreError):
        database.list_users()

    database.close()


def test_connect_failure_raises_store_error(tmp_path: Path) -> None:
    missing_dir = tmp_path / "missing" / "users.sqlite3"
    db = Database(f"sqlite:///{missing_dir}")

    with pytest.raises(StoreError):
        db.connect()
    assert db.is_connected is False


def test_build_database_url_defaults_to_mysql() -> None:
    url = build_database_url(Settings())

    assert url.drivername == "mysql+pymysql"
    assert url.host == "mysql"
    assert url.port == 3306
    assert url.username == "root"
    assert url.database == "k8s_demo"


def test_build_database_url_prefers_explicit_url() -> None:
    url = build_database_url(Settings(database_url="sqlite:///./users.sqlite3"))

    assert url.get_backend_name() == "sqlite"
