"""Account records: the parsed candidate and its persisted form."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Sequence

FIELDS = ("name", "user_name", "email", "ip", "mac", "account_number")

# Fields with a storage-level UNIQUE constraint, in conflict-reporting priority
UNIQUE_FIELDS = ("user_name", "email", "mac", "account_number")

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
# Shape only, no octet range check
IP_RE = re.compile(r"([0-9]{1,3}\.){3}[0-9]{1,3}")
MAC_RE = re.compile(r"([0-9A-F]{2}[:-]){5}[0-9A-F]{2}", re.IGNORECASE)


def clean_cell(value: Any) -> str:
    """Render a spreadsheet cell as a trimmed string.

    Readers hand back floats for numeric cells, so integral values lose the
    trailing ".0" ("12345.0" -> "12345"). Boolean cells render lowercase.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


@dataclass(frozen=True)
class CandidateAccount:
    name: str
    user_name: str
    email: str
    ip: str
    mac: str
    account_number: str

    @classmethod
    def from_row(cls, cells: Sequence[Any]) -> CandidateAccount:
        """Build a normalized candidate from the first six cells of a row."""
        name, user_name, email, ip, mac, account_number = (clean_cell(c) for c in cells[:6])
        return cls(
            name=name,
            user_name=user_name,
            email=email.lower(),
            ip=ip,
            mac=mac.upper(),
            account_number=account_number,
        )

    def validation_problem(self) -> str | None:
        """Return a description of the first broken rule, or None when valid."""
        for field in FIELDS:
            if not getattr(self, field):
                return f"{field} is required"
        if not EMAIL_RE.fullmatch(self.email):
            return "email is malformed"
        if not IP_RE.fullmatch(self.ip):
            return "ip is malformed"
        if not MAC_RE.fullmatch(self.mac):
            return "mac is malformed"
        return None

    def is_valid(self) -> bool:
        return self.validation_problem() is None

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class PersistedAccount:
    id: str             # UUID hex
    name: str
    user_name: str
    email: str
    ip: str
    mac: str
    account_number: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> PersistedAccount:
        return cls(**{k: row[k] for k in cls.__dataclass_fields__})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
