from __future__ import annotations

import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiomysql
import aiosqlite
from loguru import logger

from .config import get_settings


_ROOT = Path(__file__).resolve().parent.parent.parent

# Comments, quoted literals (with doubled-quote escapes), statement
# separators, and everything else.
_SQL_TOKEN = re.compile(
    r"--[^\n]*|/\*.*?\*/|'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|;|[^;'\"\-/]+|.",
    re.DOTALL,
)

_SQLITE_REWRITES: tuple[tuple[str, str], ...] = (
    (r"\s*ENGINE\s*=\s*\w+", ""),
    (r"\s*DEFAULT\s+CHARSET\s*=\s*\w+", ""),
    (r"\s*COLLATE\s*=\s*\w+", ""),
    (r"\s*COMMENT\s+'[^']*'", ""),
    (r"\bAUTO_INCREMENT\b", "AUTOINCREMENT"),
    (r"\bINT\b(\s+AUTOINCREMENT|\s+PRIMARY\s+KEY)", r"INTEGER\1"),
    (r"\bAUTOINCREMENT\s+PRIMARY\s+KEY\b", "PRIMARY KEY AUTOINCREMENT"),
    (r"\bDATETIME\b", "TEXT"),
    (r"\s*ON\s+UPDATE\s+CURRENT_TIMESTAMP", ""),
    (r"\bCURRENT_TIMESTAMP\b", "(datetime('now'))"),
    (r"\bTINYINT\(1\)", "INTEGER"),
)


class Database:
    """Shared connection holder.

    Uses an ``aiomysql`` pool when the MySQL settings are complete and a
    single ``aiosqlite`` connection otherwise. SQL is written with ``%s``
    placeholders for both.
    """

    def __init__(self) -> None:
        self._pool: aiomysql.Pool | None = None
        self._sqlite_conn: aiosqlite.Connection | None = None
        self._settings = get_settings()
        self._use_sqlite = not all(
            (
                self._settings.database_host,
                self._settings.database_user,
                self._settings.database_name,
            )
        )

    @property
    def dialect(self) -> str:
        return "sqlite" if self._use_sqlite else "mysql"

    def _get_sqlite_path(self) -> Path:
        return _ROOT / "opsconsole.db"

    def _get_migrations_dir(self) -> Path:
        return _ROOT / "migrations"

    def _prepare_sql(self, sql: str) -> str:
        return sql.replace("%s", "?") if self._use_sqlite else sql

    def _split_sql_statements(self, sql: str) -> list[str]:
        """Split a script on top-level semicolons, dropping comments."""
        statements: list[str] = []
        pending: list[str] = []
        for token in _SQL_TOKEN.findall(sql):
            if token.startswith("--") or token.startswith("/*"):
                continue
            if token != ";":
                pending.append(token)
                continue
            statement = "".join(pending).strip()
            if statement:
                statements.append(statement)
            pending = []
        tail = "".join(pending).strip()
        if tail:
            statements.append(tail)
        return statements

    def _adapt_sql_for_sqlite(self, sql: str) -> str:
        for pattern, replacement in _SQLITE_REWRITES:
            sql = re.sub(pattern, replacement, sql, flags=re.IGNORECASE)
        return sql

    async def connect(self) -> None:
        if self.is_connected():
            return
        if self._use_sqlite:
            path = self._get_sqlite_path()
            logger.info("Connecting to SQLite database at {path}", path=str(path))
            self._sqlite_conn = await aiosqlite.connect(str(path))
            self._sqlite_conn.row_factory = aiosqlite.Row
            await self._sqlite_conn.execute("PRAGMA foreign_keys = ON")
            await self._sqlite_conn.commit()
            return
        logger.info("Connecting to MySQL at {host}", host=self._settings.database_host)
        self._pool = await aiomysql.create_pool(
            host=self._settings.database_host,
            user=self._settings.database_user,
            password=self._settings.database_password or "",
            db=self._settings.database_name,
            autocommit=True,
            minsize=1,
            maxsize=10,
            pool_recycle=600,
            init_command="SET time_zone = '+00:00'",
        )

    async def disconnect(self) -> None:
        if self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None
        if self._pool:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None
        logger.info("Database connection closed")

    def is_connected(self) -> bool:
        return self._pool is not None or self._sqlite_conn is not None

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        if self._use_sqlite:
            if not self._sqlite_conn:
                raise RuntimeError("SQLite database not initialised")
            yield self._sqlite_conn
            return
        if not self._pool:
            raise RuntimeError("Database pool not initialised")
        conn = await self._pool.acquire()
        try:
            yield conn
        finally:
            self._pool.release(conn)

    async def execute(self, sql: str, params: tuple | dict | None = None) -> int:
        """Run a write statement and return the number of affected rows."""
        async with self.acquire() as conn:
            if self._use_sqlite:
                cursor = await conn.execute(self._prepare_sql(sql), params or ())
                await conn.commit()
                return max(cursor.rowcount or 0, 0)
            async with conn.cursor() as cursor:
                await cursor.execute(sql, params)
                return cursor.rowcount or 0

    async def fetch_all(self, sql: str, params: tuple | dict | None = None) -> list[dict[str, Any]]:
        async with self.acquire() as conn:
            if self._use_sqlite:
                cursor = await conn.execute(self._prepare_sql(sql), params or ())
                return [dict(row) for row in await cursor.fetchall()]
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(sql, params)
                return list(await cursor.fetchall())

    @asynccontextmanager
    async def _migration_lock(self, conn: Any) -> AsyncIterator[None]:
        """Hold a MySQL named lock so concurrent workers migrate one at a time."""
        if self._use_sqlite:
            yield
            return
        lock_name = f"{self._settings.database_name}_migration_lock"
        timeout = self._settings.migration_lock_timeout
        async with conn.cursor() as cursor:
            await cursor.execute("SELECT GET_LOCK(%s, %s)", (lock_name, timeout))
            result = await cursor.fetchone()
        if not result or result[0] != 1:
            logger.error(
                "Unable to obtain database migration lock {lock} within {timeout}s",
                lock=lock_name,
                timeout=timeout,
            )
            raise RuntimeError("Could not obtain database migration lock")
        try:
            yield
        finally:
            async with conn.cursor() as cursor:
                await cursor.execute("SELECT RELEASE_LOCK(%s)", (lock_name,))

    async def _run(self, conn: Any, sql: str, params: tuple = ()) -> list[Any]:
        if self._use_sqlite:
            cursor = await conn.execute(self._prepare_sql(sql), params)
            return list(await cursor.fetchall())
        async with conn.cursor() as cursor:
            await cursor.execute(sql, params or None)
            return list(await cursor.fetchall())

    async def _apply_migration(self, conn: Any, path: Path) -> None:
        sql = path.read_text(encoding="utf-8")
        if self._use_sqlite:
            sql = self._adapt_sql_for_sqlite(sql)
        for statement in self._split_sql_statements(sql):
            await self._run(conn, statement)
        await self._run(conn, "INSERT INTO migrations (name) VALUES (%s)", (path.name,))
        if self._use_sqlite:
            await conn.commit()

    async def run_migrations(self) -> None:
        """Apply pending ``migrations/*.sql`` files in name order."""
        await self.connect()
        migrations_dir = self._get_migrations_dir()
        if not migrations_dir.exists():
            logger.warning("No migrations directory found at {path}", path=str(migrations_dir))
            return

        async with self.acquire() as conn, self._migration_lock(conn):
            await self._run(
                conn, "CREATE TABLE IF NOT EXISTS migrations (name VARCHAR(255) PRIMARY KEY)"
            )
            applied = {row[0] for row in await self._run(conn, "SELECT name FROM migrations")}
            for path in sorted(migrations_dir.glob("*.sql")):
                if path.name in applied:
                    continue
                await self._apply_migration(conn, path)
                logger.info("Applied migration {name}", name=path.name)


db = Database()
