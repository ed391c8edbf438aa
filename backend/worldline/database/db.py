"""
Database connection and initialization.

Each logical database name maps to one SQLite file under
``settings.DATABASE_DIR``. The schema is applied the first time a file is
opened in this process.
"""

import re
from pathlib import Path

import aiosqlite

from worldline.config import settings
from worldline.logging import get_logger

logger = get_logger('database')

SCHEMA_PATH = Path(__file__).parent / "init_db.sql"

_DATABASE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
_initialized_paths: set[str] = set()


def resolve_database_path(database: str) -> Path:
    """
    Resolve a logical database name to its SQLite file.

    :param database: Logical database name, e.g. ``"novel"``
    :type database: str
    :return: Absolute path of the database file
    :rtype: Path
    :raises ValueError: If the name is empty or not a safe file stem
    """
    name = (database or "").strip()
    if not _DATABASE_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid database name: {database!r}")
    return Path(settings.DATABASE_DIR) / f"{name}.db"


async def _apply_schema(db: aiosqlite.Connection) -> None:
    with open(SCHEMA_PATH) as f:
        await db.executescript(f.read())
    await db.commit()


async def init_db(database: str) -> Path:
    """
    Create the database file and apply the schema if needed.

    :param database: Logical database name
    :type database: str
    :return: Path of the initialized database file
    :rtype: Path
    """
    path = resolve_database_path(database)
    path.parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(path) as db:
        await _apply_schema(db)
    _initialized_paths.add(str(path))
    logger.info(f"Database '{database}' initialized at {path}")
    return path


async def connect(database: str) -> aiosqlite.Connection:
    """
    Open a connection to a logical database.

    The caller owns the connection and must close it.

    :param database: Logical database name
    :type database: str
    :return: Open connection with row factory and foreign keys enabled
    :rtype: aiosqlite.Connection
    """
    path = resolve_database_path(database)
    if str(path) not in _initialized_paths:
        await init_db(database)

    db = await aiosqlite.connect(path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    return db
