"""Helpers for building database URLs from environment components."""
from sqlalchemy.engine import URL


def get_database_url(
    driver: str,
    host: str,
    port: int,
    user: str,
    password: str,
    name: str,
) -> str:
    """
    Build a connection URL, quoting credentials that contain reserved characters.

    Example:
        >>> get_database_url("postgresql+asyncpg", "db", 5432, "cycles", "p@ss", "academic")
        'postgresql+asyncpg://cycles:p%40ss@db:5432/academic'
    """
    url = URL.create(
        drivername=driver,
        username=user,
        password=password,
        host=host,
        port=port,
        database=name,
    )
    return url.render_as_string(hide_password=False)
