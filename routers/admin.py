import logging
import re
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

import config
from models import BackgroundConfig, QuestionnaireConfig, TextConfig, ValidationSettings
from services.auth_service import MAX_PASSWORD_BYTES, AdminSession
from services.errors import AccessDenied, InstanceNotFound, ValidationFailed
from services.signage_defaults import effective_questionnaire_config
from state import AppState, current_admin, get_state, require_instance_admin, require_superadmin

logger = logging.getLogger(__name__)
router = APIRouter(prefix=f"{config.BASE_PATH}/api", tags=["signage"])

SIGNAGE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")


class CreateSignageRequest(BaseModel):
    id: str
    location_name: str
    timezone: str = "UTC"
    is_active: bool = True
    background_config: Optional[BackgroundConfig] = None


class UpdateSignageRequest(BaseModel):
    location_name: Optional[str] = None
    is_active: Optional[bool] = None
    timezone: Optional[str] = None
    logo_url: Optional[str] = None
    text_config: Optional[TextConfig] = None
    questionnaire_config: Optional[QuestionnaireConfig] = None


class BackgroundRequest(BaseModel):
    background_config: BackgroundConfig


class CredentialsRequest(BaseModel):
    email: str
    password: str


async def ready_repository(state: AppState = Depends(get_state)):
    # DB가 필요한 요청은 먼저 연결 확인 -> 안 되면 503
    await state.repository.ping()
    return state.repository


def _check_timezone(timezone: str) -> None:
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationFailed(f"Invalid timezone: {timezone}")


def instance_payload(instance) -> dict:
    return {
        "id": instance.signage_id,
        "location_name": instance.location_name,
        "is_active": instance.is_active,
        "timezone": instance.timezone,
        "logo_url": instance.logo_url,
        "background_config": instance.background_config.model_dump(exclude_none=True),
        "questionnaire_config": effective_questionnaire_config(instance.questionnaire_config).model_dump(),
        "text_config": instance.text_config.model_dump(by_alias=True),
        "created_at": instance.created_at.isoformat() if instance.created_at else None,
    }


# --- [공개: 사이니지/폰 화면이 설정을 다시 불러올 때] ---

@router.get("/signage/{signage_id}")
async def get_signage_config(signage_id: str, repository=Depends(ready_repository)):
    instance = await repository.get_instance(signage_id)
    if instance is None:
        raise InstanceNotFound()
    return instance_payload(instance)


# --- [슈퍼관리자 전용] ---

@router.get("/signage")
async def list_signage(_: AdminSession = Depends(require_superadmin), repository=Depends(ready_repository)):
    instances = await repository.list_instances()
    return [
        {
            "id": i.signage_id,
            "location_name": i.location_name,
            "is_active": i.is_active,
            "timezone": i.timezone,
            "logo_url": i.logo_url,
            "created_at": i.created_at.isoformat() if i.created_at else None,
        }
        for i in instances
    ]


@router.post("/signage", status_code=201)
async def create_signage(
        body: CreateSignageRequest,
        _: AdminSession = Depends(require_superadmin),
        repository=Depends(ready_repository)
):
    if not SIGNAGE_ID_PATTERN.match(body.id):
        raise ValidationFailed("id must be alphanumeric and underscores only")
    if not body.location_name.strip():
        raise ValidationFailed("id and location_name required")
    _check_timezone(body.timezone)

    instance = await repository.create_instance(
        signage_id=body.id,
        location_name=body.location_name.strip(),
        timezone=body.timezone,
        is_active=body.is_active,
        background_config=body.background_config,
    )
    if instance is None:
        raise ValidationFailed(f"Signage {body.id} already exists")
    return instance_payload(instance)


@router.delete("/signage/{signage_id}")
async def delete_signage(
        signage_id: str,
        _: AdminSession = Depends(require_superadmin),
        repository=Depends(ready_repository)
):
    if not await repository.delete_instance(signage_id):
        raise InstanceNotFound()
    return {"success": True, "message": "Instance deleted"}


@router.put("/signage/{signage_id}/credentials")
async def set_credentials(
        signage_id: str,
        body: CredentialsRequest,
        _: AdminSession = Depends(require_superadmin),
        repository=Depends(ready_repository)
):
    if not body.email.strip() or not body.password:
        raise ValidationFailed("email and password required")
    if len(body.password) < 6:
        raise ValidationFailed("Password must be at least 6 characters")
    if len(body.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailed(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    if await repository.get_instance(signage_id) is None:
        raise InstanceNotFound()
    credential = await repository.set_admin_credential(signage_id, body.email, body.password)
    return {"signage_id": signage_id, "email": credential.email}


@router.get("/signage/{signage_id}/credentials")
async def get_credentials(
        signage_id: str,
        _: AdminSession = Depends(require_superadmin),
        repository=Depends(ready_repository)
):
    # 비밀번호 해시는 절대 내보내지 않음
    credential = await repository.get_admin_credential(signage_id)
    if credential is None:
        return {"configured": False, "email": None}
    return {"configured": True, "email": credential.email}


# --- [인스턴스 관리자 또는 슈퍼관리자] ---

@router.patch("/signage/{signage_id}")
async def update_signage(
        signage_id: str,
        body: UpdateSignageRequest,
        admin: AdminSession = Depends(require_instance_admin),
        repository=Depends(ready_repository)
):
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    # 장소 이름/활성 여부/시간대는 슈퍼관리자만 변경
    if not admin.can_manage_all:
        for field in ("location_name", "is_active", "timezone"):
            changes.pop(field, None)
    if "timezone" in changes:
        _check_timezone(changes["timezone"])
    # model_dump 로 dict 가 된 설정값을 다시 모델로
    if body.text_config is not None:
        changes["text_config"] = body.text_config
    if body.questionnaire_config is not None:
        changes["questionnaire_config"] = body.questionnaire_config
    if not changes:
        raise ValidationFailed("No fields to update")

    instance = await repository.update_instance(signage_id, changes)
    if instance is None:
        raise InstanceNotFound()
    return instance_payload(instance)


@router.get("/signage/{signage_id}/stats")
async def signage_stats(
        signage_id: str,
        _: AdminSession = Depends(require_instance_admin),
        repository=Depends(ready_repository)
):
    return await repository.instance_stats(signage_id)


@router.get("/signage/{signage_id}/background")
async def get_background(
        signage_id: str,
        _: AdminSession = Depends(require_instance_admin),
        repository=Depends(ready_repository)
):
    instance = await repository.get_instance(signage_id)
    if instance is None:
        raise InstanceNotFound()
    return instance.background_config.model_dump(exclude_none=True)


@router.put("/signage/{signage_id}/background")
async def update_background(
        signage_id: str,
        body: BackgroundRequest,
        _: AdminSession = Depends(require_instance_admin),
        state: AppState = Depends(get_state),
        repository=Depends(ready_repository)
):
    if not await repository.update_background(signage_id, body.background_config):
        raise InstanceNotFound()

    background = body.background_config.model_dump(exclude_none=True)
    # 켜져 있는 사이니지 화면에 바로 반영
    await state.registry.broadcast(signage_id, {"type": "background_update", "backgroundConfig": background})
    return background


@router.get("/validation/{signage_id}")
async def get_validation_config(
        signage_id: str,
        _: AdminSession = Depends(require_instance_admin),
        repository=Depends(ready_repository)
):
    settings = await repository.get_validation_config(signage_id)
    return {"signage_id": signage_id, **settings.model_dump()}


@router.put("/validation/{signage_id}")
async def update_validation_config(
        signage_id: str,
        body: ValidationSettings,
        _: AdminSession = Depends(require_instance_admin),
        repository=Depends(ready_repository)
):
    settings = await repository.save_validation_config(signage_id, body)
    logger.info("Validation config for signage %s: allow_multiple_submissions=%s",
                signage_id, settings.allow_multiple_submissions)
    return {"signage_id": signage_id, **settings.model_dump()}


# --- [관리자 대시보드: 참가자/제출 목록] ---

def scoped_signage_id(request: Request, signage_id: Optional[str] = Query(None, alias="signageId")) -> Optional[str]:
    admin = current_admin(request)
    if signage_id:
        if not admin.can_manage(signage_id):
            raise AccessDenied()
        return signage_id
    if admin.can_manage_all:
        return None
    # 인스턴스 관리자는 자기 사이니지만 볼 수 있음
    return admin.signage_id


def participant_payload(participant) -> dict:
    return {
        "id": str(participant.id),
        "signage_id": participant.signage_id,
        "name": participant.name,
        "email": participant.email,
        "phone": participant.phone,
        "choice": participant.branch,
        "partner_name": participant.partner_name,
        "partner_email": participant.partner_email,
        "partner_phone": participant.partner_phone,
        "partner_choice": participant.partner_branch,
        "created_at": participant.created_at.isoformat() if participant.created_at else None,
    }


def session_payload(session, participant) -> dict:
    return {
        "id": str(session.id),
        "participant_id": str(session.participant_id),
        "signage_id": session.signage_id,
        "status": session.status,
        "answers": session.answers,
        "total_points": session.total_points,
        "created_at": session.created_at.isoformat() if session.created_at else None,
        "participant": participant_payload(participant) if participant is not None else None,
    }


@router.get("/admin/users")
async def list_users(
        signage_id: Optional[str] = Depends(scoped_signage_id),
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        repository=Depends(ready_repository)
):
    participants = await repository.list_participants(signage_id, limit=limit, offset=offset)
    return [participant_payload(p) for p in participants]


@router.get("/admin/sessions")
async def list_sessions(
        signage_id: Optional[str] = Depends(scoped_signage_id),
        status: Optional[str] = None,
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        repository=Depends(ready_repository)
):
    rows = await repository.list_sessions(signage_id, status=status, limit=limit, offset=offset)
    return [session_payload(session, participant) for session, participant in rows]
