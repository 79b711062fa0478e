# esign_app/esign/exceptions.py

"""
Custom exceptions for the e-signature gateway.

Only ``message`` is ever sent back to the caller; ``details`` holds provider
bodies, status codes and remediation hints for the server-side logs.
"""

from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse


class ESignBaseException(Exception):
    """Base exception for all e-signature errors."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationException(ESignBaseException):
    """Raised when the DocuSign credentials cannot be loaded."""


class SigningRequestValidationException(ESignBaseException):
    """Raised when the caller's signing request is malformed."""
    status_code = status.HTTP_400_BAD_REQUEST


class TokenGenerationException(ESignBaseException):
    """Raised when the JWT grant does not yield an access token."""
    def __init__(self, details: Optional[dict] = None):
        super().__init__("Failed to generate JWT token", details)


class ConsentRequiredException(TokenGenerationException):
    """Raised when the impersonated user has not granted consent yet."""
    def __init__(self, consent_url: str):
        super().__init__({"consent_url": consent_url})
        self.consent_url = consent_url


class BaseUriRetrievalException(ESignBaseException):
    """Raised when the account base URI cannot be resolved."""
    def __init__(self, details: Optional[dict] = None):
        super().__init__("Failed to retrieve base URI", details)


class EnvelopeCreationException(ESignBaseException):
    """Raised when DocuSign rejects or never receives the envelope."""
    def __init__(self, details: Optional[dict] = None):
        super().__init__("Failed to create envelope", details)


def error_response(exc: ESignBaseException) -> JSONResponse:
    """
    Convert an ESignBaseException to the flat ``{"error": ...}`` response.

    Args:
        exc: The e-signature exception to convert

    Returns:
        JSONResponse with the exception's status code and message
    """
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
