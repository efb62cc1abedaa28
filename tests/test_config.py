import pytest

from personnel import ConfigurationError, Database, Settings


def test_defaults():
    settings = Settings()
    assert settings.dsn == "sqlite:///:memory:"
    assert settings.pool_size == 5
    assert settings.strict_references is False


def test_from_env_reads_prefixed_values():
    settings = Settings.from_env(
        environ={
            "PERSONNEL_DSN": "postgresql://staff@db/staff",
            "PERSONNEL_POOL_SIZE": "3",
            "PERSONNEL_SLOW_QUERY_MS": "250",
            "PERSONNEL_STRICT_REFERENCES": "yes",
            "PERSONNEL_LOG_LEVEL": "debug",
        }
    )
    assert settings == Settings(
        dsn="postgresql://staff@db/staff",
        pool_size=3,
        slow_query_ms=250.0,
        strict_references=True,
        log_level="debug",
    )


def test_from_env_custom_prefix_and_os_environ(monkeypatch):
    monkeypatch.setenv("HR_POOL_SIZE", "2")
    assert Settings.from_env(prefix="HR_").pool_size == 2


@pytest.mark.parametrize(
    "environ",
    [
        {"PERSONNEL_POOL_SIZE": "many"},
        {"PERSONNEL_POOL_SIZE": "0"},
        {"PERSONNEL_STRICT_REFERENCES": "perhaps"},
        {"PERSONNEL_DSN": "oracle://db/staff"},
        {"PERSONNEL_LOG_LEVEL": "chatty"},
        {"PERSONNEL_SLOW_QUERY_MS": "-1"},
    ],
)
def test_invalid_settings_raise(environ):
    with pytest.raises(ConfigurationError):
        Settings.from_env(environ=environ)


def test_in_memory_database_uses_single_connection():
    with Database(Settings(pool_size=4)) as database:
        assert database.pool.size == 1
        assert not database.pool.discard_broken
    assert database.pool.closed


def test_file_database_keeps_pool_size(tmp_path):
    database = Database(Settings(dsn=f"sqlite:///{tmp_path / 'staff.db'}", pool_size=3))
    assert database.pool.size == 3
    assert database.pool.created == 0
    database.close()
    database.close()
