from __future__ import annotations

from typing import Dict, Optional


class EcoQuoteError(Exception):
    """Base class for every error raised by the application."""


class ValidationFailed(EcoQuoteError):
    """Client input is incomplete or malformed.

    ``field_errors`` maps a field name to a message when the problem can be
    pinned to a form field; blocking errors (signature, legal terms,
    financing documents) carry only ``message``.
    """

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.field_errors = dict(field_errors or {})


class NotFound(EcoQuoteError):
    pass


class QuoteUnavailable(EcoQuoteError):
    """The remote-signature link is unknown or the quote is already signed."""


class CollaboratorError(EcoQuoteError):
    """A store, renderer or blob backend failed."""


class RenderError(CollaboratorError):
    pass


class UploadError(CollaboratorError):
    pass


class StorageError(CollaboratorError):
    pass


class TransitionFailed(EcoQuoteError):
    """A lifecycle transition was aborted; nothing was persisted."""


class ExtractionError(EcoQuoteError):
    pass


class AuthError(EcoQuoteError):
    pass


class IllegalTransition(EcoQuoteError):
    """The quote session is not in a state that allows the requested step."""
