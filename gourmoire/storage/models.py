from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: str
    username: str
    email: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    is_active: bool = True


@dataclass
class PasswordRecord:
    user_id: str
    password_hash: str
    password_algo: str
    updated_at: Optional[datetime] = None
