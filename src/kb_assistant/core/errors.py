"""
Error Taxonomy and Global Error Handling

This module defines the exception hierarchy shared by ingestion, retrieval
and the HTTP layer, plus the application-wide FastAPI exception handlers.

Error Classes
-------------
- ConfigurationError : missing credentials or URLs, fatal before any work.
- InputValidationError : rejected input (oversized query, bad arguments).
- DocumentStoreError : a document store read or write failed.
- IngestionError : an ingestion run aborted, with batch context.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- No automatic retries: errors propagate with enough context to diagnose
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("kb.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class AssistantError(RuntimeError):
    """Base error for the knowledge-base assistant."""


class ConfigurationError(AssistantError):
    """Raised when required configuration (credentials, URLs) is missing."""


class InputValidationError(AssistantError, ValueError):
    """Raised when caller-supplied input is rejected before any work."""


class QueryTooLongError(InputValidationError):
    """Raised when a query exceeds the maximum accepted length."""

    def __init__(self, length: int, max_length: int) -> None:
        super().__init__(
            f"Message too long. Maximum length is {max_length} characters "
            f"(got {length})."
        )
        self.length = length
        self.max_length = max_length


class DocumentStoreError(AssistantError):
    """Raised when a document store read or write fails."""


class IngestionError(AssistantError):
    """Raised when an ingestion run aborts."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def input_validation_handler(
    request: Request,
    exc: InputValidationError,
) -> JSONResponse:
    """
    Translate rejected input into a 400 response.

    Validation messages are written for callers, so they are returned
    verbatim.
    """
    logger.info(
        "Rejected input on %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )

    return JSONResponse(
        status_code=400,
        content={"error": "invalid_input", "detail": str(exc)},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    This handler should be registered with FastAPI as the final safety net
    for any exception not otherwise handled by route-level or framework-level
    handlers.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
