import pytest
from sqlalchemy.engine import make_url

from origination.db.url import is_sqlite_url, normalize_database_url


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("sqlite+aiosqlite:///./origination-test.db", "sqlite+aiosqlite:///./origination-test.db"),
        ("sqlite:///./origination-test.db", "sqlite+aiosqlite:///./origination-test.db"),
        ("sqlite+aiosqlite:////tmp/origination.db", "sqlite+aiosqlite:////tmp/origination.db"),
    ],
)
def test_sqlite_urls_stay_parseable(raw, expected):
    normalized = normalize_database_url(raw)
    assert normalized == expected
    url = make_url(normalized)
    assert url.drivername == "sqlite+aiosqlite"
    assert is_sqlite_url(normalized)


def test_postgres_urls_use_psycopg():
    normalized = normalize_database_url("postgres://user:pw@db:5432/origination?ssl=true")
    url = make_url(normalized)
    assert url.drivername == "postgresql+psycopg"
    assert url.host == "db"
    assert url.database == "origination"
    assert url.query["sslmode"] == "require"


def test_explicit_sslmode_wins():
    normalized = normalize_database_url("postgresql://u:p@db/o?ssl=false&sslmode=verify-full")
    assert make_url(normalized).query == {"sslmode": "verify-full"}


def test_blank_url_is_left_alone():
    assert normalize_database_url("  ") == ""
