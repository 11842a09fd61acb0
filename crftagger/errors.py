"""Exception hierarchy shared by the decoding engine.

`FormatError` covers malformed model artifacts and is raised by every loader.
`IllegalStateError` flags a `Tagger` method called out of order, which is
always a programming mistake on the caller's side.
"""
from __future__ import annotations

__all__ = ["CRFError", "FormatError", "ModelFormatError", "IllegalStateError"]


class CRFError(Exception):
    """Base class for all errors raised by ``crftagger``."""


class FormatError(CRFError, ValueError):
    """A text or binary model artifact could not be parsed."""


class ModelFormatError(FormatError):
    """A model parsed but its header disagrees with its dictionary or weights."""


class IllegalStateError(CRFError, RuntimeError):
    """A tagger operation was invoked outside its state-machine order."""
