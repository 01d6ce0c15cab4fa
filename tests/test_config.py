from __future__ import annotations

from pathlib import Path

import pytest

from users_api.config import CONFIG_PATH_ENV, Settings, load_settings


def test_defaults_when_environment_is_empty() -> None:
    settings = load_settings({})

    assert settings == Settings()
    assert settings.port == 3000
    assert settings.db_host == "mysql"
    assert settings.db_user == "root"
    assert settings.db_password == "password"
    assert settings.db_name == "k8s_demo"
    assert settings.db_port == 3306
    assert settings.database_url is None


def test_environment_overrides_defaults() -> None:
    settings = load_settings(
        {
            "PORT": "8080",
            "MYSQL_HOST": "db.internal",
            "MYSQL_USER": "app",
            "MYSQL_PASSWORD": "s3cret",
            "MYSQL_DATABASE": "users",
            "MYSQL_PORT": "3307",
            "MAX_BODY_BYTES": "2048",
        }
    )

    assert settings.port == 8080
    assert settings.db_host == "db.internal"
    assert settings.db_user == "app"
    assert settings.db_password == "s3cret"
    assert settings.db_name == "users"
    assert settings.db_port == 3307
    assert settings.max_body_bytes == 2048


def test_invalid_integer_names_the_key() -> None:
    with pytest.raises(ValueError, match="db_port"):
        load_settings({"MYSQL_PORT": "not-a-port"})


def test_yaml_file_is_overridden_by_environment(tmp_path: Path) -> None:
    config_file = tmp_path / "users-api.yaml"
    config_file.write_text("db_host: from-file\ndb_port: 3310\nport: 9000\n", encoding="utf-8")

    settings = load_settings({CONFIG_PATH_ENV: str(config_file), "PORT": "9100"})

    assert settings.db_host == "from-file"
    assert settings.db_port == 3310
    assert settings.port == 9100


def test_yaml_file_rejects_unknown_keys(tmp_path: Path) -> None:
    config_file = tmp_path / "users-api.yaml"
    config_file.write_text("hosts: []\n", encoding="utf-8")

    with pytest.raises(ValueError, match="hosts"):
        load_settings({}, config_path=config_file)
