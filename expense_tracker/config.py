"""
Expense Tracker - Configuration and Constants

PURPOSE: Central configuration management for the application
SCOPE: Application settings, constants, and environment variables
DEPENDENCIES: python-dotenv (foundational module)
"""

import os
import logging
from dataclasses import dataclass, field, fields
from typing import List, Optional

from dotenv import load_dotenv


DEFAULT_CATEGORIES = [
    'Food', 'Transportation', 'Entertainment', 'Utilities',
    'Healthcare', 'Shopping', 'Subscription', 'Other'
]

RECEIPT_CATEGORIES = [
    'Food', 'Travel', 'Groceries', 'Bills', 'Entertainment',
    'Health', 'Shopping', 'Education', 'Other'
]


@dataclass
class AppConfig:
    """Application configuration constants."""
    DB_FILE: str = 'expenses.db'
    ENVIRONMENT: str = 'production'
    LOG_LEVEL: str = 'INFO'
    CORS_ORIGINS: List[str] = field(default_factory=lambda: ['http://localhost:5173'])

    # Auth
    JWT_SECRET: str = 'change-me'
    JWT_ALGORITHM: str = 'HS256'
    JWT_EXPIRES_DAYS: int = 30
    RESET_TOKEN_EXPIRES_MINUTES: int = 60
    FRONTEND_URL: str = 'http://localhost:5173'

    # Categories
    DEFAULT_CATEGORIES: List[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    RECEIPT_CATEGORIES: List[str] = field(default_factory=lambda: list(RECEIPT_CATEGORIES))

    # Uploads
    UPLOAD_DIR: str = 'uploads'
    MAX_UPLOAD_FILES: int = 5

    # Generative model
    AI_API_KEY: Optional[str] = None
    AI_API_URL: str = 'https://generativelanguage.googleapis.com/v1beta'
    AI_MODEL: str = 'gemini-2.0-flash'
    AI_TIMEOUT: float = 60.0

    # Forecast
    FORECAST_ENGINE: str = 'gemini'
    FORECAST_MIN_HISTORY: int = 5
    FORECAST_MAX_HISTORY: int = 100
    FORECAST_DAYS: int = 30
    TREND_WINDOW_DAYS: int = 30

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == 'development'

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'AppConfig':
        """Build a config from environment variables, falling back to defaults."""
        load_dotenv(env_file)
        overrides = {}
        for f in fields(cls):
            raw = os.getenv(f.name)
            if raw is None:
                continue
            if f.type in (int, 'int'):
                overrides[f.name] = int(raw)
            elif f.type in (float, 'float'):
                overrides[f.name] = float(raw)
            elif f.name in ('CORS_ORIGINS', 'DEFAULT_CATEGORIES', 'RECEIPT_CATEGORIES'):
                overrides[f.name] = [item.strip() for item in raw.split(',') if item.strip()]
            else:
                overrides[f.name] = raw
        # GEMINI_API_KEY is the name the key is usually issued under
        if 'AI_API_KEY' not in overrides and os.getenv('GEMINI_API_KEY'):
            overrides['AI_API_KEY'] = os.getenv('GEMINI_API_KEY')
        return cls(**overrides)


def setup_logging(level: str = 'INFO') -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Global configuration instance
config = AppConfig.from_env()

# Set up logging
setup_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)
