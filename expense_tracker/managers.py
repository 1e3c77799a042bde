"""
Expense Tracker - Data Managers

PURPOSE: Data access layer for users, expenses, budgets and categories
SCOPE: CRUD operations, aggregate queries, and per-user scoping
DEPENDENCIES: aiosqlite, database.py, security.py

Every query filters on the owning user's id; nothing here reads across users.
"""

import sqlite3
import logging
from datetime import datetime, date, timedelta, timezone
from typing import List, Dict, Any, Optional, Iterable

from .database import connect
from .exceptions import (
    ValidationError, NotFoundError, PermissionDeniedError, InvalidResetTokenError
)
from .security import hash_password, verify_password, hash_reset_token
from .validators import normalize_category, parse_date, validate_budget

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp() -> str:
    return _utcnow().isoformat(timespec='seconds')


def _storage_date(value: Any) -> str:
    """Expense dates are stored as naive ISO datetimes; missing means now."""
    parsed = parse_date(value) if value else None
    if parsed is None:
        parsed = _utcnow()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.isoformat(timespec='seconds')


def merge_categories(defaults: Iterable[str], custom: Iterable[str]) -> List[str]:
    """Defaults first, then custom names not already present (case-insensitive)."""
    merged = []
    seen = set()
    for name in list(defaults) + list(custom):
        key = name.lower()
        if key not in seen:
            seen.add(key)
            merged.append(name)
    return merged


class UserManager:
    """Handles user accounts, budgets and password resets."""

    def __init__(self, db_file: str):
        self.db_file = db_file

    async def create_user(self, username: str, email: str, password: str,
                          phone_number: Optional[str] = None) -> Dict[str, Any]:
        """Create a user; raises ValidationError if username or email is taken."""
        if await self.find_existing(username, email):
            raise ValidationError("User with this email or username already exists")

        async with connect(self.db_file) as conn:
            try:
                cursor = await conn.execute('''
                    INSERT INTO users (username, email, password_hash, phone_number, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                ''', (username, email.lower(), hash_password(password), phone_number,
                      _timestamp(), _timestamp()))
            except sqlite3.IntegrityError:
                raise ValidationError("User with this email or username already exists")
            user_id = cursor.lastrowid
            await conn.commit()

        logger.info(f"Registered user {user_id} ({username})")
        return await self.get_user(user_id)

    async def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        async with connect(self.db_file) as conn:
            cursor = await conn.execute('SELECT * FROM users WHERE id = ?', (user_id,))
            row = await cursor.fetchone()
            return self._public_user(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        async with connect(self.db_file) as conn:
            cursor = await conn.execute('SELECT * FROM users WHERE email = ?', ((email or '').lower(),))
            row = await cursor.fetchone()
            return self._public_user(row) if row else None

    async def find_existing(self, username: str, email: str) -> bool:
        async with connect(self.db_file) as conn:
            cursor = await conn.execute(
                'SELECT 1 FROM users WHERE username = ? OR email = ?',
                (username, (email or '').lower())
            )
            return await cursor.fetchone() is not None

    async def authenticate(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """Return the user when the credentials match, otherwise None."""
        async with connect(self.db_file) as conn:
            cursor = await conn.execute('SELECT * FROM users WHERE email = ?', ((email or '').lower(),))
            row = await cursor.fetchone()
        if row and verify_password(password, row['password_hash']):
            return self._public_user(row)
        return None

    async def get_budget(self, user_id: int) -> float:
        """Return the stored budget, or 0 if it was never set."""
        async with connect(self.db_file) as conn:
            cursor = await conn.execute('SELECT budget FROM users WHERE id = ?', (user_id,))
            row = await cursor.fetchone()
        if not row:
            raise NotFoundError("User not found")
        return float(row['budget'] or 0)

    async def set_budget(self, user_id: int, budget: Any) -> float:
        """Overwrite the budget; invalid values leave the stored one untouched."""
        is_valid, errors = validate_budget(budget)
        if not is_valid:
            raise ValidationError("; ".join(errors))

        async with connect(self.db_file) as conn:
            cursor = await conn.execute(
                'UPDATE users SET budget = ?, updated_at = ? WHERE id = ?',
                (float(budget), _timestamp(), user_id)
            )
            await conn.commit()
            if cursor.rowcount == 0:
                raise NotFoundError("User not found")
        return float(budget)

    async def store_reset_token(self, user_id: int, token_hash: str, expires_at: datetime) -> None:
        async with connect(self.db_file) as conn:
            await conn.execute(
                'UPDATE users SET reset_token_hash = ?, reset_token_expires = ?, updated_at = ? WHERE id = ?',
                (token_hash, expires_at.isoformat(), _timestamp(), user_id)
            )
            await conn.commit()

    async def reset_password(self, token: str, new_password: str) -> None:
        """Set a new password for the holder of a valid, unexpired reset token."""
        token_hash = hash_reset_token(token or '')
        async with connect(self.db_file) as conn:
            cursor = await conn.execute(
                'SELECT id, reset_token_expires FROM users WHERE reset_token_hash = ?',
                (token_hash,)
            )
            row = await cursor.fetchone()
            expires_at = parse_date(row['reset_token_expires']) if row else None
            if row is None or expires_at is None or expires_at <= _utcnow():
                raise InvalidResetTokenError("Invalid or expired token")

            if not new_password or len(new_password) < 6:
                raise ValidationError("Password must be at least 6 characters")

            await conn.execute('''
                UPDATE users
                SET password_hash = ?, reset_token_hash = NULL, reset_token_expires = NULL, updated_at = ?
                WHERE id = ?
            ''', (hash_password(new_password), _timestamp(), row['id']))
            await conn.commit()
        logger.info(f"Password reset for user {row['id']}")

    @staticmethod
    def _public_user(row) -> Dict[str, Any]:
        return {
            'id': row['id'],
            'username': row['username'],
            'email': row['email'],
            'phone_number': row['phone_number'],
            'budget': float(row['budget'] or 0),
        }


class ExpenseManager:
    """Handles expense CRUD operations and aggregate queries."""

    def __init__(self, db_file: str):
        self.db_file = db_file

    async def create_expense(self, user_id: int, expense_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new expense record owned by ``user_id``."""
        values = self._prepare_expense_values(expense_data)
        now = _timestamp()

        async with connect(self.db_file) as conn:
            cursor = await conn.execute('''
                INSERT INTO expenses (user_id, description, amount, category, date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (user_id, values['description'], values['amount'], values['category'],
                  values['date'], now, now))
            expense_id = cursor.lastrowid
            await conn.commit()

        return await self.get_expense(user_id, expense_id)

    async def get_expense(self, user_id: int, expense_id: int) -> Dict[str, Any]:
        """Get a single expense, enforcing ownership."""
        async with connect(self.db_file) as conn:
            row = await self._fetch_owned(conn, user_id, expense_id)
            return self._sanitize_expense_data(dict(row))

    async def get_all_expenses(self, user_id: int) -> List[Dict[str, Any]]:
        """Get the user's expenses, newest first."""
        async with connect(self.db_file) as conn:
            cursor = await conn.execute('''
                SELECT * FROM expenses WHERE user_id = ?
                ORDER BY date DESC, id DESC
            ''', (user_id,))
            return [self._sanitize_expense_data(dict(row)) for row in await cursor.fetchall()]

    async def update_expense(self, user_id: int, expense_id: int,
                             expense_data: Dict[str, Any]) -> Dict[str, Any]:
        """Update the given fields of an existing expense."""
        async with connect(self.db_file) as conn:
            current = dict(await self._fetch_owned(conn, user_id, expense_id))
            merged = {key: current[key] for key in ('description', 'amount', 'category', 'date')}
            merged.update({k: v for k, v in expense_data.items() if k in merged and v is not None})
            values = self._prepare_expense_values(merged)

            await conn.execute('''
                UPDATE expenses SET description = ?, amount = ?, category = ?, date = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
            ''', (values['description'], values['amount'], values['category'], values['date'],
                  _timestamp(), expense_id, user_id))
            await conn.commit()

        return await self.get_expense(user_id, expense_id)

    async def delete_expense(self, user_id: int, expense_id: int) -> None:
        """Delete an expense record."""
        async with connect(self.db_file) as conn:
            await self._fetch_owned(conn, user_id, expense_id)
            await conn.execute('DELETE FROM expenses WHERE id = ? AND user_id = ?', (expense_id, user_id))
            await conn.commit()

    async def sum_by_category(self, user_id: int) -> Dict[str, float]:
        """Total amount per category."""
        async with connect(self.db_file) as conn:
            cursor = await conn.execute('''
                SELECT category, SUM(amount) AS total
                FROM expenses WHERE user_id = ?
                GROUP BY category
            ''', (user_id,))
            return {row['category']: float(row['total']) for row in await cursor.fetchall()}

    async def daily_trend(self, user_id: int, window_days: int = 30, zero_fill: bool = False,
                          today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Daily totals over the trailing ``window_days`` (today included), oldest first.

        Days without expenses are left out unless ``zero_fill`` is set.
        """
        if window_days < 1:
            raise ValidationError("Window must be at least one day")
        end = today or _utcnow().date()
        start = end - timedelta(days=window_days - 1)

        async with connect(self.db_file) as conn:
            cursor = await conn.execute('''
                SELECT date(date) AS day, SUM(amount) AS total
                FROM expenses
                WHERE user_id = ? AND date(date) BETWEEN ? AND ?
                GROUP BY day
                ORDER BY day ASC
            ''', (user_id, start.isoformat(), end.isoformat()))
            totals = {row['day']: float(row['total']) for row in await cursor.fetchall()}

        if not zero_fill:
            return [{'date': day, 'total': total} for day, total in totals.items()]

        trend = []
        for offset in range(window_days):
            day = (start + timedelta(days=offset)).isoformat()
            trend.append({'date': day, 'total': totals.get(day, 0.0)})
        return trend

    async def monthly_report(self, user_id: int, year: int, month: int) -> Dict[str, Any]:
        """Total, count and per-category totals for one calendar month."""
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")
        period = f"{year:04d}-{month:02d}"

        async with connect(self.db_file) as conn:
            cursor = await conn.execute('''
                SELECT category, SUM(amount) AS total, COUNT(*) AS count
                FROM expenses
                WHERE user_id = ? AND strftime('%Y-%m', date) = ?
                GROUP BY category
                ORDER BY total DESC
            ''', (user_id, period))
            rows = await cursor.fetchall()

        by_category = [{'category': row['category'], 'total': float(row['total'])} for row in rows]
        return {
            'year': year,
            'month': month,
            'total': sum(item['total'] for item in by_category),
            'count': sum(row['count'] for row in rows),
            'by_category': by_category,
        }

    async def recent_history(self, user_id: int, limit: int) -> List[Dict[str, Any]]:
        """Amount, category and date of the newest ``limit`` expenses."""
        async with connect(self.db_file) as conn:
            cursor = await conn.execute('''
                SELECT amount, category, date FROM expenses
                WHERE user_id = ?
                ORDER BY date DESC, id DESC
                LIMIT ?
            ''', (user_id, limit))
            return [
                {'amount': float(row['amount']), 'category': row['category'], 'date': row['date'][:10]}
                for row in await cursor.fetchall()
            ]

    async def _fetch_owned(self, conn, user_id: int, expense_id: int):
        cursor = await conn.execute('SELECT * FROM expenses WHERE id = ?', (expense_id,))
        row = await cursor.fetchone()
        if not row:
            raise NotFoundError("Expense not found")
        if row['user_id'] != user_id:
            raise PermissionDeniedError("User not authorized")
        return row

    def _prepare_expense_values(self, form_data: dict) -> dict:
        """Prepare expense values for storage; the category is normalized here."""
        return {
            'description': str(form_data.get('description', '')).strip(),
            'amount': float(form_data.get('amount', 0)),
            'category': normalize_category(form_data.get('category')),
            'date': _storage_date(form_data.get('date')),
        }

    def _sanitize_expense_data(self, row_data: Dict[str, Any]) -> Dict[str, Any]:
        """Shape a database row for API output."""
        return {
            'id': int(row_data['id']),
            'user_id': int(row_data['user_id']),
            'description': str(row_data.get('description', '')),
            'amount': float(row_data.get('amount', 0.0)),
            'category': str(row_data.get('category', 'Other')),
            'date': str(row_data.get('date', '')),
            'created_at': str(row_data.get('created_at', '')),
            'updated_at': str(row_data.get('updated_at', '')),
        }


class CategoryManager:
    """Handles per-user expense categories."""

    def __init__(self, db_file: str, default_categories: Iterable[str]):
        self.db_file = db_file
        self.default_categories = list(default_categories)

    async def get_custom_categories(self, user_id: int) -> List[Dict[str, Any]]:
        async with connect(self.db_file) as conn:
            cursor = await conn.execute(
                'SELECT id, name, color FROM categories WHERE user_id = ? ORDER BY name',
                (user_id,)
            )
            return [dict(row) for row in await cursor.fetchall()]

    async def get_all_categories(self, user_id: int) -> List[str]:
        """Default categories merged with the user's own, without duplicates."""
        custom = await self.get_custom_categories(user_id)
        return merge_categories(self.default_categories, [row['name'] for row in custom])

    async def add_category(self, user_id: int, name: str, color: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Add a category; returns None if the user already has it."""
        name = normalize_category(name)
        async with connect(self.db_file) as conn:
            try:
                cursor = await conn.execute(
                    'INSERT INTO categories (user_id, name, color) VALUES (?, ?, ?)',
                    (user_id, name, color)
                )
                await conn.commit()
            except sqlite3.IntegrityError:
                return None  # Category already exists
            return {'id': cursor.lastrowid, 'name': name, 'color': color}

    async def delete_category(self, user_id: int, name: str) -> bool:
        """Delete one of the user's categories."""
        async with connect(self.db_file) as conn:
            cursor = await conn.execute(
                'DELETE FROM categories WHERE user_id = ? AND name = ?',
                (user_id, normalize_category(name))
            )
            await conn.commit()
            return cursor.rowcount > 0
