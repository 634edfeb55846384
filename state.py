from dataclasses import dataclass
from typing import Optional

from fastapi import Request, WebSocket

import config
from services.auth_service import AdminSession, AdminSessionStore
from services.broadcast_service import BroadcastRegistry
from services.errors import AccessDenied, NotAuthenticated
from services.session_service import SessionCoordinator
from services.token_service import ShortLivedTokenStore


@dataclass
class AppState:
    """프로세스 수명 동안 유지되는 메모리 상태 (토큰, 웹소켓 연결, 관리자 세션)"""
    tokens: ShortLivedTokenStore
    registry: BroadcastRegistry
    admin_sessions: AdminSessionStore
    repository: object
    coordinator: SessionCoordinator

    @classmethod
    def build(cls, repository, tokens: Optional[ShortLivedTokenStore] = None) -> "AppState":
        # 빈 저장소도 len() == 0 이라 falsy -> None 인지로만 판단
        if tokens is None:
            tokens = ShortLivedTokenStore(config.TOKEN_TTL_SECONDS, config.TOKEN_STORE_CAPACITY)
        registry = BroadcastRegistry()
        return cls(
            tokens=tokens,
            registry=registry,
            admin_sessions=AdminSessionStore(),
            repository=repository,
            coordinator=SessionCoordinator(tokens, registry, repository),
        )


def get_state(request: Request) -> AppState:
    return request.app.state.signage


def get_ws_state(websocket: WebSocket) -> AppState:
    return websocket.app.state.signage


def current_admin(request: Request) -> AdminSession:
    session = get_state(request).admin_sessions.get(request.cookies.get(config.ADMIN_COOKIE_KEY))
    if session is None:
        raise NotAuthenticated()
    return session


def require_superadmin(request: Request) -> AdminSession:
    session = current_admin(request)
    if not session.can_manage_all:
        raise AccessDenied("SuperAdmin access required")
    return session


def require_instance_admin(request: Request, signage_id: str) -> AdminSession:
    """경로의 signage_id 를 관리할 권한이 있는지 확인 (슈퍼관리자는 항상 통과)"""
    session = current_admin(request)
    if not session.can_manage(signage_id):
        raise AccessDenied()
    return session
