from __future__ import annotations


class HabitTrackerError(Exception):
    """Base class for validation and lookup failures surfaced to API callers."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, *, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def to_payload(self) -> dict:
        payload: dict = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidStatus(HabitTrackerError):
    code = "INVALID_STATUS"


class InvalidCount(HabitTrackerError):
    code = "INVALID_COUNT"


class InvalidBoundaryHour(HabitTrackerError):
    code = "INVALID_BOUNDARY_HOUR"


class InvalidDate(HabitTrackerError):
    code = "INVALID_DATE"


class EmptyImportContent(HabitTrackerError):
    code = "EMPTY_IMPORT_CONTENT"


class NoHabitsFound(HabitTrackerError):
    code = "NO_HABITS_FOUND"


class InvalidHabitParent(HabitTrackerError):
    code = "INVALID_PARENT"


class InvalidSetting(HabitTrackerError):
    code = "INVALID_SETTING"


class NotFound(HabitTrackerError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code
