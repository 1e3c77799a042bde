"""
Expense Tracker - Generative Model Client

PURPOSE: Thin async client for the external generative-model API
SCOPE: Request building (text + inline images) and response text extraction
DEPENDENCIES: httpx, config.py
"""

import base64
import logging
from typing import Iterable, Tuple

import httpx

from .config import AppConfig
from .exceptions import AIServiceError

logger = logging.getLogger(__name__)

ImagePart = Tuple[bytes, str]


class GenerativeModelClient:
    """Sends one ``generateContent`` request per call. No retries."""

    def __init__(self, app_config: AppConfig, transport: httpx.AsyncBaseTransport = None):
        self.api_key = app_config.AI_API_KEY
        self.base_url = app_config.AI_API_URL.rstrip('/')
        self.model = app_config.AI_MODEL
        self.timeout = app_config.AI_TIMEOUT
        self._transport = transport

    @staticmethod
    def build_payload(prompt: str, images: Iterable[ImagePart] = ()) -> dict:
        parts = [{'text': prompt}]
        for data, media_type in images:
            parts.append({
                'inline_data': {
                    'mime_type': media_type,
                    'data': base64.b64encode(data).decode('ascii'),
                }
            })
        return {'contents': [{'role': 'user', 'parts': parts}]}

    async def generate(self, prompt: str, images: Iterable[ImagePart] = ()) -> str:
        """Return the text of the model's first candidate."""
        if not self.api_key:
            raise AIServiceError("AI_API_KEY is not configured")

        images = list(images)
        url = f"{self.base_url}/models/{self.model}:generateContent"
        logger.info(f"Calling {self.model} with {len(images)} image(s)")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=self.build_payload(prompt, images),
                    headers={'x-goog-api-key': self.api_key},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Model API returned {e.response.status_code}: {e.response.text[:500]}")
            raise AIServiceError(f"Model API error ({e.response.status_code})")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Model API request failed: {e}")
            raise AIServiceError(f"Model API request failed: {e}")

        text = self.extract_text(data)
        if not text.strip():
            raise AIServiceError("Model returned an empty response")
        return text

    @staticmethod
    def extract_text(data: dict) -> str:
        try:
            parts = data['candidates'][0]['content']['parts']
        except (KeyError, IndexError, TypeError):
            return ''
        return ''.join(part.get('text', '') for part in parts if isinstance(part, dict))
