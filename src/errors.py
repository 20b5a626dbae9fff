"""Error kinds raised by the week-grid core."""

from __future__ import annotations


class LifeWeeksError(Exception):
    """Base class for all errors raised by the core."""


class InvalidCoordinate(LifeWeeksError, ValueError):
    """A week coordinate lies outside the life grid."""


class TemplateDateUnresolvable(LifeWeeksError):
    """A recurring template's coordinates do not resolve to a calendar date."""

    def __init__(self, template_id: str, reason: str):
        super().__init__(f"Template {template_id} has no resolvable date: {reason}")
        self.template_id = template_id
        self.reason = reason


class RecurrenceNotConfigured(LifeWeeksError, ValueError):
    """An entry was used as a recurrence template without recurrence settings."""


class PersistenceFailure(LifeWeeksError):
    """The storage collaborator rejected a write.

    The original collaborator error is chained as ``__cause__``.
    """

    def __init__(self, operation: str, entry_id: str | None, message: str = ""):
        detail = f"{operation} failed for entry {entry_id}"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(detail)
        self.operation = operation
        self.entry_id = entry_id


class PartialDeleteFailure(LifeWeeksError):
    """A cascading delete removed only some of a template's goal instances."""

    def __init__(self, template_id: str, deleted_ids: list[str], failures: dict[str, Exception]):
        super().__init__(
            f"Deleting template {template_id}: {len(failures)} of "
            f"{len(deleted_ids) + len(failures)} goal instance(s) could not be deleted"
        )
        self.template_id = template_id
        self.deleted_ids = deleted_ids
        self.failures = failures


class PartialSweepFailure(LifeWeeksError):
    """One or more goal conversions in a sweep failed.

    ``failures`` maps each failed goal id to its cause so callers can retry
    just those goals.
    """

    def __init__(self, converted: dict[str, str], failures: dict[str, Exception]):
        super().__init__(
            f"{len(failures)} goal conversion(s) failed, {len(converted)} succeeded"
        )
        self.converted = converted
        self.failures = failures

    @property
    def failed_ids(self) -> list[str]:
        return list(self.failures)
