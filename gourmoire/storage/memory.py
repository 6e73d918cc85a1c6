from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from gourmoire.logging import get_logger
from gourmoire.storage.errors import ConstraintViolation
from gourmoire.storage.models import PasswordRecord, User


class MemoryStore:
    """In-process system of record for credential subjects."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        self.credentials: Dict[str, PasswordRecord] = {}
        # RLock so helpers can be called while the lock is already held
        self._data_lock = threading.RLock()

    def create_user(
        self,
        username: str,
        email: str = "",
        *,
        is_active: bool = True,
        user_id: Optional[str] = None,
    ) -> User:
        with self._data_lock:
            if self._find_by_username(username) is not None:
                raise ConstraintViolation(
                    "username already exists", field="username", value=username
                )
            user = User(
                id=user_id or str(uuid.uuid4()),
                username=username,
                email=email or "",
                is_active=is_active,
            )
            self.users[user.id] = user
            self.logger.info("user_created", user_id=user.id, username=username)
            return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def _find_by_username(self, username: str) -> Optional[User]:
        for user in self.users.values():
            if user.username == username:
                return user
        return None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._data_lock:
            return self._find_by_username(username)

    def delete_user(self, user_id: str) -> bool:
        with self._data_lock:
            self.credentials.pop(user_id, None)
            return self.users.pop(user_id, None) is not None

    def save_password(
        self, user_id: str, password_hash: str, password_algo: str
    ) -> None:
        with self._data_lock:
            if user_id not in self.users:
                raise ConstraintViolation(
                    "user not found for credentials", field="user_id", value=user_id
                )
            self.credentials[user_id] = PasswordRecord(
                user_id=user_id,
                password_hash=password_hash,
                password_algo=password_algo,
                updated_at=datetime.now(timezone.utc),
            )

    def get_password_record(self, user_id: str) -> Optional[tuple[str, str]]:
        with self._data_lock:
            record = self.credentials.get(user_id)
            if record is None:
                return None
            return record.password_hash, record.password_algo
