from __future__ import annotations


class BirthdaySchedulerError(Exception):
    pass


class InvalidTimeZone(BirthdaySchedulerError, ValueError):
    def __init__(self, time_zone: str) -> None:
        super().__init__(f"Unknown time zone: {time_zone!r}")
        self.time_zone = time_zone


class InvalidSubject(BirthdaySchedulerError, ValueError):
    def __init__(self, issues: list[str]) -> None:
        super().__init__("Invalid subject data: " + "; ".join(issues))
        self.issues = issues


class MalformedFiring(BirthdaySchedulerError):
    pass


class SubjectNotFound(BirthdaySchedulerError, LookupError):
    def __init__(self, subject_id: str) -> None:
        super().__init__(f"Subject not found with ID: {subject_id}")
        self.subject_id = subject_id


class BackendFailure(BirthdaySchedulerError):
    pass


class DeliveryFailure(BirthdaySchedulerError):
    pass
