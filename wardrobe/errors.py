"""
Error taxonomy shared by the stores, the asset pipeline and the HTTP layer.

Each error carries the HTTP status it is rendered with at the request
boundary (see ``wardrobe.app``).
"""

from __future__ import annotations


class WardrobeError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class ValidationError(WardrobeError):
    """Missing or malformed request fields."""

    status_code = 400


class InvalidCategoryError(ValidationError):
    """A collection name that is not one of the recognized categories."""


class NotFoundError(WardrobeError):
    """Unknown user, category or item."""

    status_code = 404


class ConflictError(WardrobeError):
    """A user with the same email already exists."""

    status_code = 409


class ProcessingError(WardrobeError):
    """Background removal or image write failed; nothing was committed."""

    status_code = 500
