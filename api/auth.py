"""API key guard for the loopback safety API."""
from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

LOGGER = logging.getLogger("fub.api")


class APIKeyAuth:
    """FastAPI dependency comparing ``X-API-Key`` against the configured key.

    With no key configured every guarded route answers 401, so a fresh
    install never exposes destructive endpoints by accident.
    """

    def __init__(self, expected_key: Optional[str]) -> None:
        self._expected = (expected_key or "").strip()

    @property
    def configured(self) -> bool:
        return bool(self._expected)

    def __call__(self, x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> str:
        if not self._expected:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="API key is not configured.",
            )
        provided = (x_api_key or "").strip()
        if not provided or not secrets.compare_digest(provided, self._expected):
            LOGGER.warning("rejected request with invalid or missing API key")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing API key.",
            )
        return self._expected


__all__ = ["APIKeyAuth"]
