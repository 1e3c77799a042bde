"""
Expense Tracker - Receipt Scanning

PURPOSE: Turn receipt images into a structured expense draft
SCOPE: Image checks, prompt construction and decoding of the model's answer
DEPENDENCIES: Pillow, ai_client.py, parsers.py
"""

import io
import asyncio
import logging
from typing import List, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from .ai_client import GenerativeModelClient
from .config import AppConfig
from .exceptions import AIServiceError, ValidationError
from .parsers import ReceiptScanResult, coerce_category, decode_model_json

logger = logging.getLogger(__name__)

RECEIPT_PROMPT = """
Analyze these {count} receipts or screenshots.
They might be different receipts or multiple photos of the same long receipt.

Extract the following details as a consolidated JSON object:
- amount: The TOTAL combined transaction amount from all images (number only, no symbols).
- date: The transaction date (in YYYY-MM-DD format). If multiple dates exist, use the most recent or logical one. Use null if no date is visible.
- merchant: The name of the merchant(s) or person(s) paid.
- category: The expense category. Choose ONE that best fits the majority of items: [{categories}].

Important:
- Provide ONE consolidated object.
- Add up the amounts from all valid receipts found.
- Ignore duplicate charges if an image appears twice or shows the same transaction.
- Return ONLY the JSON string. Do not use Markdown code blocks.
"""


class ImageChecker:
    """Verifies uploaded bytes really are an image before they leave the server."""

    @staticmethod
    def _verify(image_bytes: bytes) -> str:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.verify()
            return image.format or ''

    @classmethod
    async def verify(cls, image_bytes: bytes) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, cls._verify, image_bytes)
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValidationError(f"Uploaded file is not a readable image: {e}")


class ReceiptScanService:
    """Main service for extracting expense data from receipt images."""

    def __init__(self, client: GenerativeModelClient, app_config: AppConfig):
        self.client = client
        self.categories = list(app_config.RECEIPT_CATEGORIES)
        self.max_files = app_config.MAX_UPLOAD_FILES

    def build_prompt(self, image_count: int) -> str:
        return RECEIPT_PROMPT.format(count=image_count, categories=', '.join(self.categories))

    async def scan(self, images: Sequence[Tuple[bytes, str]]) -> ReceiptScanResult:
        """Scan 1..max_files images of ``(bytes, media_type)`` into one draft."""
        images = list(images)
        self._check_images(images)
        for image_bytes, _ in images:
            await ImageChecker.verify(image_bytes)

        logger.info(f"Scanning {len(images)} receipt image(s)")
        try:
            text = await self.client.generate(self.build_prompt(len(images)), images)
            result = decode_model_json(text, ReceiptScanResult)
        except AIServiceError as e:
            raise type(e)(f"AI Scan Failed: {e.message}") from e

        result.category = coerce_category(result.category, self.categories)
        return result

    def _check_images(self, images: List[Tuple[bytes, str]]) -> None:
        if not images:
            raise ValidationError("No image uploaded")
        if len(images) > self.max_files:
            raise ValidationError(f"You can upload at most {self.max_files} images")
        for image_bytes, media_type in images:
            if not (media_type or '').startswith('image/'):
                raise ValidationError(f"Unsupported file type: {media_type or 'unknown'}")
            if not image_bytes:
                raise ValidationError("Uploaded image is empty")
