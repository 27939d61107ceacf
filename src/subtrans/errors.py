"""Error types raised by the codec, gateway, pipeline and store."""

from __future__ import annotations


class SubtransError(Exception):
    """Base class for all subtrans errors."""


class MalformedEntryError(SubtransError):
    """A subtitle block could not be turned into an entry (strict parsing only)."""

    def __init__(self, message: str, block_number: int, block: str) -> None:
        super().__init__(message)
        self.block_number = block_number
        self.block = block


class TranslationFailure(SubtransError):
    """The translation provider did not return a usable translation."""

    def __init__(self, detail: str, error_type: str = "unknown") -> None:
        super().__init__(detail)
        self.detail = detail
        self.error_type = error_type


class GatewayUnavailable(TranslationFailure):
    """Transient provider trouble (network, rate limit, 5xx). Not retried."""


class SetNotFound(SubtransError):
    def __init__(self, set_id: int) -> None:
        super().__init__(f"Subtitle set not found: {set_id}")
        self.set_id = set_id
