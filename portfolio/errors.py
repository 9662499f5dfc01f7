"""
Error types shared by the content API and the admin pages.

Each error carries the HTTP status it maps to, so views can turn it into the
``{"success": false, "error": ...}`` envelope without inspecting the type.
"""


class ApiError(Exception):
    """Base class for errors that are reported to the caller as-is."""

    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ApiError):
    """Client input error: missing field, bad JSON, bad email format."""

    status_code = 400


class AuthError(ApiError):
    """Missing, invalid or expired credentials."""

    status_code = 401


class NotFoundError(ApiError):
    status_code = 404
