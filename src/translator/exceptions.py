"""Exceptions raised by the translation API client."""

from enum import Enum
from typing import Any, Dict, Optional


class ApiErrorKind(str, Enum):
    """Failure classes of a translation API call."""

    UNCONFIGURED = "unconfigured"
    REMOTE = "remote"
    INVALID_RESPONSE = "invalid_response"
    NETWORK = "network"


class TranslationApiError(Exception):
    """Translation API error with a kind, a stable code and optional details."""

    def __init__(
        self,
        message: str,
        kind: ApiErrorKind,
        code: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.code = code
        self.details = details or {}
