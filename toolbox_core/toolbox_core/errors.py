from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


def log_api_error(base_message: str, error: BaseException) -> None:
    """Log a failed request, preferring the server's response body over the error text."""
    details: object = str(error)
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        try:
            details = response.json()
        except ValueError:
            if response.text:
                details = response.text
    logger.error(f"{base_message} {details}")
