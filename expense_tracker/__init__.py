"""
Expense Tracker Backend Package

PURPOSE: Package initialization for the expense tracker backend
SCOPE: Module imports and package configuration
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
__description__ = "Personal expense tracker with AI receipt scanning and spend forecasting"

# Package imports for easier access
from .config import config, AppConfig
from .database import DatabaseManager
from .ocr_processor import ReceiptScanService
from .forecast import ForecastService, RegressionForecaster
from .managers import UserManager, ExpenseManager, CategoryManager, merge_categories
from .validators import (
    normalize_category, validate_expense_data, validate_budget, validate_category_name
)

__all__ = [
    "config",
    "AppConfig",
    "DatabaseManager",
    "ReceiptScanService",
    "ForecastService",
    "RegressionForecaster",
    "UserManager",
    "ExpenseManager",
    "CategoryManager",
    "merge_categories",
    "normalize_category",
    "validate_expense_data",
    "validate_budget",
    "validate_category_name"
]
