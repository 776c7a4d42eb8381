"""Exception types raised by the StyleStudio data layer.

Read paths never raise these; they degrade to empty results and log.  Write
paths raise them so the API and CLI can translate each one into a message
for the user.

Hierarchy
---------
StyleStudioError
    StorageUnavailable      backend cannot be checked, read or written
    QuotaExceeded           write rejected because the size budget is spent
    ValidationError         malformed record handed to a write API
    ParseError              one legacy catalog entry could not be parsed
    MigrationInconsistency  migration status and stored data disagree
"""

from __future__ import annotations


class StyleStudioError(Exception):
    """Base class for every error raised by the data layer."""


class StorageUnavailable(StyleStudioError):
    """The key-value backend cannot be used.

    Recoverable for reads (callers fall back to empty state), fatal for writes.
    """


class QuotaExceeded(StyleStudioError):
    """A write was rejected because the storage budget is exhausted.

    Recoverable by removing history records and retrying.
    """


class ValidationError(StyleStudioError):
    """A record handed to a write API failed schema validation.

    This signals a programming error in the caller, not bad user input.

    Attributes:
        reasons: One human-readable line per failed field.
    """

    def __init__(self, message: str, reasons: list[str] | tuple[str, ...] = ()):
        super().__init__(message)
        self.reasons = list(reasons)

    def __str__(self) -> str:
        message = super().__str__()
        if self.reasons:
            return f"{message}: {'; '.join(self.reasons)}"
        return message


class ParseError(StyleStudioError):
    """A single legacy catalog entry could not be turned into a template.

    Parse errors are collected and counted by the parser; they never abort
    the rest of the catalog.

    Attributes:
        index: The entry number from the catalog, or ``None`` if unknown.
    """

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index

    def __str__(self) -> str:
        message = super().__str__()
        if self.index is not None:
            return f"Entry {self.index}: {message}"
        return message


class MigrationInconsistency(StyleStudioError):
    """Migration status and the template store disagree.

    Attributes:
        recovery_actions: Suggested corrective steps for the operator.
    """

    def __init__(self, message: str, recovery_actions: list[str] | tuple[str, ...] = ()):
        super().__init__(message)
        self.recovery_actions = list(recovery_actions)
