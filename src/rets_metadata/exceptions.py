"""Errors raised while resolving RETS metadata.

Every error derives from :class:`RetsMetadataError`. Errors raised by a
fetcher collaborator are never wrapped: they reach the caller unchanged.
"""

from __future__ import annotations

from typing import Any, Optional


class RetsMetadataError(Exception):
    """Base class for all errors raised by this package."""


class UnknownKindError(RetsMetadataError, ValueError):
    """A metadata kind outside the seven recognized kinds was requested."""

    def __init__(self, kind: Any) -> None:
        self.kind = kind
        super().__init__(f"Unknown metadata kind '{kind}'")


class ParseError(RetsMetadataError, ValueError):
    """A metadata document or fragment could not be parsed.

    Attributes:
        tag: Offending element tag (``METADATA-TABLE``) or the metadata kind
            of the whole document when the XML itself is unreadable.
    """

    def __init__(self, message: str, tag: Optional[str] = None) -> None:
        self.tag = tag
        super().__init__(f"{tag}: {message}" if tag else message)


class MalformedRowError(ParseError):
    """A ``DATA`` row does not have as many fields as the ``COLUMNS`` header."""

    def __init__(self, tag: str, row_index: int, expected: int, actual: int) -> None:
        self.row_index = row_index
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"row {row_index} has {actual} fields, header declares {expected}",
            tag=tag,
        )


class MissingSystemDataError(RetsMetadataError):
    """``version``/``date`` were requested but the SYSTEM container has no row."""


class FetchError(RetsMetadataError):
    """A source is required but no fetcher is available to retrieve it."""
