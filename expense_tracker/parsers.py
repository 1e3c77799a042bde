"""
Expense Tracker - Model Response Parsers

PURPOSE: Decode the JSON text returned by the generative model
SCOPE: Code-fence stripping, JSON parsing and schema validation for
       receipt scans and spending forecasts
DEPENDENCIES: pydantic, validators.py
"""

import re
import json
import math
import logging
from typing import Any, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError as SchemaError, field_validator

from .exceptions import ModelResponseError
from .validators import parse_date

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r'```[a-zA-Z]*')

Schema = TypeVar('Schema', bound=BaseModel)


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers (```json ... ```) around a payload."""
    return FENCE_PATTERN.sub('', text or '').strip()


def coerce_amount(value: Any) -> Optional[float]:
    """Read numbers the model may send as strings like "1,234.50" or "$12"."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float)):
        value = re.sub(r'[^\d.\-]', '', str(value))
        if not value:
            return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def coerce_category(value: Any, allowed: Iterable[str]) -> Optional[str]:
    """Map ``value`` onto one of ``allowed`` ignoring case, or None."""
    if not isinstance(value, str):
        return None
    wanted = value.strip().lower()
    for category in allowed:
        if category.lower() == wanted:
            return category
    return None


class ReceiptScanResult(BaseModel):
    amount: float = Field(..., ge=0, allow_inf_nan=False)
    date: Optional[str] = None
    merchant: str = ''
    category: Optional[str] = None

    @field_validator('amount', mode='before')
    @classmethod
    def _amount(cls, value):
        amount = coerce_amount(value)
        if amount is None:
            raise ValueError('amount must be a number')
        return amount

    @field_validator('date', mode='before')
    @classmethod
    def _date(cls, value):
        parsed = parse_date(value) if isinstance(value, str) else None
        return parsed.date().isoformat() if parsed else None

    @field_validator('merchant', mode='before')
    @classmethod
    def _merchant(cls, value):
        return str(value).strip() if value is not None else ''

    @field_validator('category', mode='before')
    @classmethod
    def _category(cls, value):
        if not isinstance(value, str):
            return None
        return value.strip() or None


class CategoryPrediction(BaseModel):
    category: str
    predictedAmount: float = Field(..., ge=0, allow_inf_nan=False)

    @field_validator('predictedAmount', mode='before')
    @classmethod
    def _amount(cls, value):
        amount = coerce_amount(value)
        return max(amount, 0.0) if amount is not None else value


class ForecastResult(BaseModel):
    predictedTotal: float = Field(..., ge=0, allow_inf_nan=False)
    predictedCategories: List[CategoryPrediction] = Field(default_factory=list)
    insights: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0, le=100, allow_inf_nan=False)

    @field_validator('predictedTotal', mode='before')
    @classmethod
    def _total(cls, value):
        amount = coerce_amount(value)
        return max(amount, 0.0) if amount is not None else value

    @field_validator('predictedCategories')
    @classmethod
    def _top_three(cls, value):
        return sorted(value, key=lambda item: item.predictedAmount, reverse=True)[:3]

    @field_validator('insights', mode='before')
    @classmethod
    def _insights(cls, value):
        if isinstance(value, str):
            return [value]
        return value

    @field_validator('confidence', mode='before')
    @classmethod
    def _confidence(cls, value):
        number = coerce_amount(value)
        if number is None:
            return value
        return min(100.0, max(0.0, number))


def decode_model_json(text: str, schema: Type[Schema]) -> Schema:
    """Strip fences, parse JSON and validate it against ``schema``.

    Any failure is raised as ModelResponseError.
    """
    cleaned = strip_code_fences(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Model returned invalid JSON: {cleaned[:200]!r}")
        raise ModelResponseError(f"Model returned invalid JSON: {e.msg}")

    if not isinstance(payload, dict):
        raise ModelResponseError("Model response is not a JSON object")

    try:
        return schema.model_validate(payload)
    except SchemaError as e:
        problems = '; '.join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        logger.error(f"Model response failed validation: {problems}")
        raise ModelResponseError(f"Model response has an unexpected shape: {problems}")
