from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.engine import make_url


def normalize_database_url(url: str) -> str:
    """Route Postgres URLs through the async psycopg driver and fold ``ssl=`` into ``sslmode``."""
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme

    # urlunsplit would drop the empty authority of sqlite:///path
    if scheme == "sqlite":
        return make_url(url).set(drivername="sqlite+aiosqlite").render_as_string(hide_password=False)
    if scheme.startswith("sqlite"):
        return url

    if scheme in {"postgres", "postgresql", "postgresql+asyncpg", "postgresql+psycopg2"}:
        scheme = "postgresql+psycopg"

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is not None:
        normalized = query.pop(ssl_key).lower().strip()
        if "sslmode" not in query:
            if normalized in {"0", "false", "no", "off", "disable"}:
                query["sslmode"] = "disable"
            elif normalized in {"require", "verify-ca", "verify-full"}:
                query["sslmode"] = normalized
            else:
                query["sslmode"] = "require"

    new_query = urlencode(query, doseq=True)
    return urlunsplit((scheme, parts.netloc, parts.path, new_query, parts.fragment))


def is_sqlite_url(url: str) -> bool:
    return urlsplit(url).scheme.startswith("sqlite")
