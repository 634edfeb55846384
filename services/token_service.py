import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessToken:
    token: str
    signage_id: str
    issued_at: float
    expires_at: float

    def is_valid_for(self, signage_id: str, now: float) -> bool:
        return now <= self.expires_at and self.signage_id == signage_id


class ShortLivedTokenStore:
    """
    참가자 폰 세션을 사이니지 한 대에 묶어 주는 단기 토큰 저장소.

    - 프로세스 메모리에만 존재 (재시작하면 전부 사라짐)
    - 검증은 읽기 전용: 만료 전까지 여러 번 사용 가능 (검증 -> 중계 N번 -> 제출)
    - 만료 토큰은 발급 시점에 저장소가 capacity 를 넘었을 때만 정리함
    """

    def __init__(self, ttl_seconds: int, capacity: int = 10000, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._tokens: Dict[str, AccessToken] = {}

    def __len__(self) -> int:
        return len(self._tokens)

    def issue(self, signage_id: str) -> str:
        now = self._clock()
        if len(self._tokens) >= self.capacity:
            self._purge_expired(now)

        token = secrets.token_urlsafe(24)
        self._tokens[token] = AccessToken(
            token=token,
            signage_id=signage_id,
            issued_at=now,
            expires_at=now + self.ttl_seconds,
        )
        logger.debug("Issued access token for signage %s", signage_id)
        return token

    def validate(self, token: str, signage_id: str) -> bool:
        if not token or not signage_id:
            return False
        record = self._tokens.get(token)
        if record is None:
            return False
        return record.is_valid_for(signage_id, self._clock())

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, record in self._tokens.items() if record.expires_at < now]
        for key in expired:
            del self._tokens[key]
        if expired:
            logger.debug("Purged %d expired access tokens", len(expired))
