from __future__ import annotations

from dataclasses import dataclass
from datetime import date


OCCASION_TYPE = "OCCASION"


@dataclass(frozen=True)
class Subject:
    subject_id: str
    first_name: str
    last_name: str
    birthday: date
    time_zone: str
    created_at: str
    updated_at: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_record(self) -> dict[str, str]:
        record = {
            "userId": self.subject_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "birthday": self.birthday.isoformat(),
            "location": self.time_zone,
            "createdAt": self.created_at,
        }
        if self.updated_at is not None:
            record["updatedAt"] = self.updated_at
        return record

    @classmethod
    def from_record(cls, record: dict) -> Subject:
        updated_at = record.get("updatedAt")
        return cls(
            subject_id=str(record["userId"]),
            first_name=str(record.get("firstName", "")),
            last_name=str(record.get("lastName", "")),
            birthday=date.fromisoformat(str(record["birthday"])),
            time_zone=str(record["location"]),
            created_at=str(record.get("createdAt", "")),
            updated_at=str(updated_at) if updated_at is not None else None,
        )


@dataclass(frozen=True)
class SchedulePayload:
    subject_id: str
    occasion_type: str = OCCASION_TYPE

    def to_dict(self) -> dict[str, str]:
        return {"subjectId": self.subject_id, "type": self.occasion_type}
