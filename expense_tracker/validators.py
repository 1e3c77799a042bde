"""
Expense Tracker - Data Validation

PURPOSE: Data validation and business rule enforcement
SCOPE: Input validation, category normalization, and form sanitizing
DEPENDENCIES: typing
"""

import re
import math
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def normalize_category(name: Optional[str]) -> str:
    """Canonical form for a category name: single spaces, each word capitalized."""
    if not name or not str(name).strip():
        return 'Other'
    words = str(name).split()
    return ' '.join(word[:1].upper() + word[1:].lower() for word in words)


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO date or datetime string, returning None if it is not one."""
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def validate_expense_data(expense_data: Dict[str, Any], partial: bool = False) -> Tuple[bool, List[str]]:
    """Validate expense data and return validation result with error messages.

    With ``partial`` set only the fields present in ``expense_data`` are
    checked, which is what updates need.
    """
    errors = []

    if not partial or 'description' in expense_data:
        description = expense_data.get('description')
        if not isinstance(description, str) or not description.strip():
            errors.append("Description is required")

    if not partial or 'amount' in expense_data:
        amount = expense_data.get('amount')
        if amount is None:
            errors.append("Amount is required")
        elif not _is_number(amount) or amount < 0:
            errors.append("Amount must be a number greater than or equal to 0")

    if not partial or 'category' in expense_data:
        category = expense_data.get('category')
        if not isinstance(category, str) or not category.strip():
            errors.append("Category is required")

    date_value = expense_data.get('date')
    if date_value:
        if parse_date(date_value) is None:
            errors.append("Date must be an ISO date (YYYY-MM-DD)")
    elif partial and date_value == '':
        # An update cannot clear the date
        errors.append("Date must be an ISO date (YYYY-MM-DD)")

    return len(errors) == 0, errors


def validate_budget(budget: Any) -> Tuple[bool, List[str]]:
    """Validate a budget amount."""
    errors = []

    if budget is None or not _is_number(budget) or budget < 0:
        errors.append("Please provide a valid positive budget amount")

    return len(errors) == 0, errors


def validate_category_name(name: str) -> Tuple[bool, List[str]]:
    """Validate category name."""
    errors = []

    if not name or not name.strip():
        errors.append("Category name is required")
    elif len(name.strip()) > 100:
        errors.append("Category name must be 100 characters or less")

    return len(errors) == 0, errors


def validate_registration(data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate a registration payload."""
    username = (data.get('username') or '').strip()
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''

    if not username or not email or not password:
        return False, ["Please add all fields"]

    errors = []
    if not 3 <= len(username) <= 255:
        errors.append("Username must be between 3 and 255 characters")
    if not EMAIL_PATTERN.match(email):
        errors.append("Please provide a valid email address")
    if len(password) < 6:
        errors.append("Password must be at least 6 characters")

    return len(errors) == 0, errors


def sanitize_form_data(form_data: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize form data by stripping whitespace from string values."""
    sanitized = {}

    for key, value in form_data.items():
        if isinstance(value, str):
            sanitized[key] = value.strip()
        else:
            sanitized[key] = value

    return sanitized
