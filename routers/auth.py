import hmac
import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse

import config
from services.auth_service import ADMIN, SUPERADMIN, AdminSession, is_password_hash, verify_password
from services.errors import DatastoreUnavailable, NotAuthenticated, ValidationFailed
from state import AppState, current_admin, get_state

logger = logging.getLogger(__name__)
router = APIRouter(prefix=f"{config.BASE_PATH}/api/auth", tags=["auth"])


def _superadmin_password_ok(password: str) -> bool:
    expected = config.SUPERADMIN_PASSWORD
    # 환경변수에는 bcrypt 해시($2a/$2b) 또는 평문 둘 다 올 수 있음
    if is_password_hash(expected):
        return verify_password(password, expected)
    return hmac.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))


def _login_response(state: AppState, role: str, ttl_seconds: int, signage_id: str = None) -> JSONResponse:
    session_id = state.admin_sessions.create(role, ttl_seconds, signage_id)
    body = {"role": role}
    if signage_id:
        body["signageId"] = signage_id
    res = JSONResponse(content=body)
    # 로그인 성공 -> 쿠키 굽기
    res.set_cookie(key=config.ADMIN_COOKIE_KEY, value=session_id, max_age=ttl_seconds, httponly=True, samesite="lax")
    return res


@router.post("/superadmin/login")
async def login_superadmin(
        email: str = Form(""),
        password: str = Form(""),
        state: AppState = Depends(get_state)
):
    if not config.SUPERADMIN_EMAIL or not config.SUPERADMIN_PASSWORD:
        raise DatastoreUnavailable("SuperAdmin not configured. Set SUPERADMIN_EMAIL and SUPERADMIN_PASSWORD.")
    if not email or not password:
        raise ValidationFailed("Email and password required")
    if email.strip().lower() != config.SUPERADMIN_EMAIL.lower() or not _superadmin_password_ok(password):
        raise NotAuthenticated("Invalid email or password")
    return _login_response(state, SUPERADMIN, config.SUPERADMIN_SESSION_TTL_SECONDS)


@router.post("/admin/login")
async def login_admin(
        email: str = Form(""),
        password: str = Form(""),
        signage_id: str = Form("", alias="signageId"),
        state: AppState = Depends(get_state)
):
    if not email or not password or not signage_id:
        raise ValidationFailed("Email, password, and signageId required")

    await state.repository.ping()
    credential = await state.repository.get_admin_credential(signage_id)
    if credential is None or credential.email != email.strip().lower() \
            or not verify_password(password, credential.password_hash):
        logger.info("Failed admin login for signage %s", signage_id)
        raise NotAuthenticated("Invalid email or password")
    return _login_response(state, ADMIN, config.ADMIN_SESSION_TTL_SECONDS, signage_id)


@router.get("/verify")
async def verify(admin: AdminSession = Depends(current_admin)):
    return {"role": admin.role, "signageId": admin.signage_id}


@router.post("/logout")
async def logout(request: Request, state: AppState = Depends(get_state)):
    state.admin_sessions.revoke(request.cookies.get(config.ADMIN_COOKIE_KEY))
    res = JSONResponse(content={"success": True})
    res.delete_cookie(config.ADMIN_COOKIE_KEY)
    return res
