# Overview: Maps HTTP failures to user-facing API errors.

from __future__ import annotations

import httpx

VALIDATION_FALLBACK = "Validation failed. Please check your input."
CONFLICT_MESSAGE = "A record with these details already exists. Please use different values."
BAD_REQUEST_FALLBACK = "Invalid request. Please check your input."
GENERIC_MESSAGE = "An error occurred. Please try again."
NO_RESPONSE_MESSAGE = "No response from server. Please try again later."
UNEXPECTED_MESSAGE = "An unexpected error occurred"


class ApiError(Exception):
    """A failed API call, reduced to a status and a banner message."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class ClientPreconditionError(ValueError):
    """Raised before any request when an action is known to be illegal."""


def _body(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _validation_message(detail) -> str:
    if not isinstance(detail, list):
        return ""
    parts = []
    for entry in detail:
        if not isinstance(entry, dict):
            continue
        loc = entry.get("loc") or []
        field = loc[-1] if loc else "input"
        parts.append(f"{field} is {entry.get('msg', 'invalid')}")
    return ", ".join(parts)


def handle_api_error(exc: Exception) -> ApiError:
    """
    422 -> "<field> is <reason>" joined with ", "
    409 -> generic conflict message
    404 -> server detail verbatim
    400 -> server message or detail, generic fallback
    other status -> server message, generic fallback
    no response -> "No response from server..." with status 500
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        data = _body(exc.response)

        if status == 422 and data.get("detail"):
            return ApiError(422, _validation_message(data["detail"]) or VALIDATION_FALLBACK)
        if status == 404:
            return ApiError(404, str(data.get("detail") or data.get("error") or "Not found"))
        if status == 409:
            return ApiError(409, CONFLICT_MESSAGE)
        if status == 400:
            return ApiError(400, str(data.get("message") or data.get("detail") or BAD_REQUEST_FALLBACK))
        return ApiError(status, str(data.get("message") or GENERIC_MESSAGE))

    if isinstance(exc, httpx.RequestError):
        return ApiError(500, NO_RESPONSE_MESSAGE)

    return ApiError(500, str(exc) or UNEXPECTED_MESSAGE)
