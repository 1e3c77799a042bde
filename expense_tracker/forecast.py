"""
Expense Tracker - Spending Forecast

PURPOSE: Predict the next 30 days of spending from a user's history
SCOPE: Model-backed forecast (prompt + decode) and a local polynomial
       regression engine producing the same result shape
DEPENDENCIES: numpy, ai_client.py, parsers.py
"""

import json
import logging
from datetime import date
from typing import Any, Dict, List, Sequence

import numpy as np

from .ai_client import GenerativeModelClient
from .config import AppConfig
from .exceptions import AIServiceError, ValidationError
from .parsers import ForecastResult, decode_model_json
from .validators import parse_date

logger = logging.getLogger(__name__)

FORECAST_PROMPT = """
You are a personal finance analyst. Today is {today}.
The user's monthly budget is {budget}.
Below are the user's most recent {count} expenses as JSON (amount, category, date):
{history}

Predict the user's spending for the next {days} days and return ONLY a JSON object
with exactly these keys:
- predictedTotal: the predicted total spend for the next {days} days (number).
- predictedCategories: the 3 categories expected to cost the most, as a list of
  objects {{"category": string, "predictedAmount": number}}, highest first.
- insights: a list of 3 short, actionable suggestions (strings), taking the budget into account.
- confidence: how confident you are in this prediction, from 0 to 100 (number).

Do not use Markdown code blocks.
"""


class RegressionForecaster:
    """Degree-2 polynomial fit over zero-filled daily totals."""

    def __init__(self, horizon_days: int = 30):
        self.horizon_days = horizon_days

    @staticmethod
    def _fit(y: np.ndarray):
        x = np.arange(len(y), dtype=float)
        if not y.any():
            return 0.0, 0.0, 0.0
        a, b, c = np.polyfit(x, y, 2)
        return float(a), float(b), float(c)

    def _project(self, coeffs, last_offset: int) -> float:
        a, b, c = coeffs
        x = np.arange(last_offset + 1, last_offset + self.horizon_days + 1, dtype=float)
        return float(np.clip(a * x * x + b * x + c, 0, None).sum())

    def forecast(self, history: Sequence[Dict[str, Any]]) -> ForecastResult:
        rows = []
        for item in history:
            parsed = parse_date(item['date'])
            if parsed is not None:
                rows.append((parsed.date(), float(item['amount']), item['category']))
        if not rows:
            raise ValidationError("Expense history has no usable dates")
        rows.sort(key=lambda row: row[0])

        first_day = rows[0][0]
        span = max(7, (rows[-1][0] - first_day).days)

        daily = np.zeros(span + 1)
        per_category: Dict[str, np.ndarray] = {}
        for day, amount, category in rows:
            offset = (day - first_day).days
            daily[offset] += amount
            per_category.setdefault(category, np.zeros(span + 1))[offset] += amount

        coeffs = self._fit(daily)
        predicted_total = self._project(coeffs, span)

        categories = []
        for category, series in per_category.items():
            amount = round(self._project(self._fit(series), span))
            if amount > 0:
                categories.append({'category': category, 'predictedAmount': amount})
        categories.sort(key=lambda item: item['predictedAmount'], reverse=True)

        a, b, _ = coeffs
        velocity = 2 * a * span + b
        acceleration = 2 * a
        direction = 'increasing' if velocity > 0 else 'decreasing'
        if abs(acceleration) > 0.1:
            momentum = 'speeding up' if acceleration > 0 else 'slowing down'
        else:
            momentum = 'stable'
        top = categories[0] if categories else None

        insights = [
            f"Your spending is {direction} and currently {momentum} based on recent patterns.",
            (f"Top predicted hotspot: {top['category']} at {top['predictedAmount']:,}."
             if top else "Top predicted hotspot: N/A."),
            ("Watch out! Your spending growth is accelerating. Consider reviewing non-essential subscriptions."
             if acceleration > 0 else "Great job! Your spending momentum is slowing down. Keep it up!"),
        ]

        return ForecastResult(
            predictedTotal=round(predicted_total),
            predictedCategories=categories,
            insights=insights,
            confidence=min(98, max(70, 100 - round(abs(a) * 100))),
        )


class ForecastService:
    """Builds forecasts for a user's recent expenses."""

    def __init__(self, client: GenerativeModelClient, app_config: AppConfig):
        self.client = client
        self.engine = app_config.FORECAST_ENGINE.lower()
        self.min_history = app_config.FORECAST_MIN_HISTORY
        self.max_history = app_config.FORECAST_MAX_HISTORY
        self.horizon_days = app_config.FORECAST_DAYS
        self.regression = RegressionForecaster(self.horizon_days)

    def prepare_history(self, history: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Newest ``max_history`` rows reduced to amount, category and date."""
        rows = [
            {'amount': float(item['amount']), 'category': item['category'], 'date': str(item['date'])[:10]}
            for item in history
        ]
        rows.sort(key=lambda item: item['date'], reverse=True)
        return rows[:self.max_history]

    def build_prompt(self, history: List[Dict[str, Any]], budget: float) -> str:
        return FORECAST_PROMPT.format(
            today=date.today().isoformat(),
            budget=budget,
            count=len(history),
            history=json.dumps(history),
            days=self.horizon_days,
        )

    async def predict(self, history: Sequence[Dict[str, Any]], budget: float) -> ForecastResult:
        if len(history) < self.min_history:
            raise ValidationError(
                f"Not enough data for AI prediction. Please add at least {self.min_history} expenses."
            )

        rows = self.prepare_history(history)
        if self.engine == 'regression':
            logger.info(f"Running regression forecast over {len(rows)} expenses")
            return self.regression.forecast(rows)

        logger.info(f"Requesting model forecast over {len(rows)} expenses")
        try:
            text = await self.client.generate(self.build_prompt(rows, budget))
            return decode_model_json(text, ForecastResult)
        except AIServiceError as e:
            raise type(e)(f"Forecast Failed: {e.message}") from e
