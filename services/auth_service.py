import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import bcrypt

logger = logging.getLogger(__name__)

SUPERADMIN = "superadmin"
ADMIN = "admin"

BCRYPT_ROUNDS = 10
# bcrypt 는 72바이트까지만 사용
MAX_PASSWORD_BYTES = 72


def is_password_hash(value: str) -> bool:
    return value.startswith("$2")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # 해시 형식이 아니거나 비밀번호가 너무 긺
        return False


@dataclass(frozen=True)
class AdminSession:
    role: str
    signage_id: Optional[str]
    expires_at: float

    @property
    def can_manage_all(self) -> bool:
        return self.role == SUPERADMIN

    def can_manage(self, signage_id: str) -> bool:
        if self.can_manage_all:
            return True
        return self.role == ADMIN and self.signage_id == signage_id


class AdminSessionStore:
    """관리자 로그인 세션 (쿠키에 세션 ID만 저장)"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._sessions: Dict[str, AdminSession] = {}

    def create(self, role: str, ttl_seconds: int, signage_id: Optional[str] = None) -> str:
        session_id = secrets.token_urlsafe(32)
        self._sessions[session_id] = AdminSession(role=role, signage_id=signage_id, expires_at=self._clock() + ttl_seconds)
        logger.info("Admin session opened (role=%s, signage=%s)", role, signage_id or "-")
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[AdminSession]:
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._clock() > session.expires_at:
            del self._sessions[session_id]
            return None
        return session

    def revoke(self, session_id: Optional[str]) -> None:
        if session_id:
            self._sessions.pop(session_id, None)
