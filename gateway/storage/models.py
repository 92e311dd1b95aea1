from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LocalUser:
    id: str
    cognito_id: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    hometown: Optional[str] = None
    instrument: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_row(cls, row: dict) -> "LocalUser":
        return cls(
            id=str(row["id"]),
            cognito_id=row["cognito_id"],
            email=row.get("email"),
            phone_number=row.get("phone_number"),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            display_name=row.get("display_name"),
            hometown=row.get("hometown"),
            instrument=row.get("instrument"),
            created_at=row["created_at"],
        )


@dataclass
class BandMembership:
    id: str
    name: str
    role: str
    status: str

    @classmethod
    def from_row(cls, row: dict) -> "BandMembership":
        return cls(id=str(row["id"]), name=row["name"], role=row["role"], status=row["status"])

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "role": self.role, "status": self.status}
