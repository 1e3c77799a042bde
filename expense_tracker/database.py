"""
Expense Tracker - Database Management

PURPOSE: Database schema, migrations, and connection management
SCOPE: SQLite operations, schema versioning, and data persistence
DEPENDENCIES: aiosqlite
"""

import aiosqlite
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def connect(db_file: str) -> AsyncIterator[aiosqlite.Connection]:
    """Open a connection with foreign keys enforced and dict-like rows."""
    async with aiosqlite.connect(db_file) as conn:
        conn.row_factory = aiosqlite.Row
        await conn.execute('PRAGMA foreign_keys = ON')
        yield conn


class DatabaseManager:
    """Handles all database operations and migrations."""

    def __init__(self, db_file: str):
        self.db_file = db_file

    async def initialize_database(self) -> None:
        """Initialize SQLite database with proper schema and migrations."""
        async with connect(self.db_file) as conn:
            await self._setup_schema_versioning(conn)
            current_version = await self._get_current_schema_version(conn)
            logger.info(f"Current database schema version: {current_version}")

            if current_version < 1:
                await self._migrate_to_version_1(conn)
            if current_version < 2:
                await self._migrate_to_version_2(conn)

            await self._create_indexes(conn)
            await conn.commit()

    async def _setup_schema_versioning(self, conn: aiosqlite.Connection) -> None:
        """Set up schema version tracking table."""
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

    async def _get_current_schema_version(self, conn: aiosqlite.Connection) -> int:
        """Get the current database schema version."""
        cursor = await conn.execute('SELECT MAX(version) FROM schema_version')
        result = await cursor.fetchone()
        return result[0] or 0

    async def _migrate_to_version_1(self, conn: aiosqlite.Connection) -> None:
        """Create users, expenses and categories tables."""
        logger.info("Migrating to schema version 1: Creating core tables")

        await conn.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT UNIQUE NOT NULL,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                phone_number TEXT DEFAULT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        await conn.execute('''
            CREATE TABLE IF NOT EXISTS expenses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                description TEXT NOT NULL,
                amount REAL NOT NULL DEFAULT 0.0 CHECK (amount >= 0),
                category TEXT NOT NULL DEFAULT 'Other',
                date TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        ''')

        await conn.execute('''
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                color TEXT DEFAULT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(user_id, name),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        ''')

        await conn.execute('INSERT INTO schema_version (version) VALUES (1)')
        logger.info("Schema migration to version 1 completed")

    async def _migrate_to_version_2(self, conn: aiosqlite.Connection) -> None:
        """Add budget and password-reset columns to users."""
        logger.info("Migrating to schema version 2: Adding budget and reset token columns")

        cursor = await conn.execute("PRAGMA table_info(users)")
        columns = [row[1] for row in await cursor.fetchall()]

        if 'budget' not in columns:
            await conn.execute('ALTER TABLE users ADD COLUMN budget REAL NOT NULL DEFAULT 0')
        if 'reset_token_hash' not in columns:
            await conn.execute('ALTER TABLE users ADD COLUMN reset_token_hash TEXT DEFAULT NULL')
        if 'reset_token_expires' not in columns:
            await conn.execute('ALTER TABLE users ADD COLUMN reset_token_expires TIMESTAMP DEFAULT NULL')

        await conn.execute('INSERT OR REPLACE INTO schema_version (version) VALUES (2)')
        logger.info("Schema migration to version 2 completed")

    async def _create_indexes(self, conn: aiosqlite.Connection) -> None:
        await conn.execute(
            'CREATE INDEX IF NOT EXISTS idx_expenses_user_date ON expenses (user_id, date)'
        )
