import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

import config
from services.errors import DatastoreUnavailable, ValidationFailed
from services.qr_service import build_play_url, generate_signage_qr
from state import AppState, get_state

logger = logging.getLogger(__name__)
router = APIRouter(prefix=f"{config.BASE_PATH}/api/token", tags=["token"])


def _instance_id(instance_id: str = Query(None, alias="instanceId"), signage_id: str = Query(None, alias="signageId")) -> str:
    # 예전 화면은 signageId 로 보냄
    value = (instance_id or signage_id or "").strip()
    if not value:
        raise ValidationFailed("instanceId required")
    return value


# 1. 사이니지 화면이 QR 새로고침할 때 호출 (인증 없음, DB 불필요)
@router.get("/generate")
async def generate_token(signage_id: str = Depends(_instance_id), state: AppState = Depends(get_state)):
    return {"token": state.tokens.issue(signage_id)}


# 2. 폰에서 QR 찍고 들어왔을 때 토큰 확인
@router.get("/validate")
async def validate_token(
        token: str = Query(""),
        signage_id: str = Depends(_instance_id),
        state: AppState = Depends(get_state)
):
    return {"valid": state.tokens.validate(token, signage_id)}


# 3. 토큰 발급 + QR 이미지 (PNG)
@router.get("/qr")
async def token_qr(request: Request, signage_id: str = Depends(_instance_id), state: AppState = Depends(get_state)):
    token = state.tokens.issue(signage_id)
    base_url = config.PUBLIC_BASE_URL or str(request.base_url)

    # 장소 이름은 있으면 붙이고, DB가 죽어 있어도 QR 자체는 만들어 줌
    caption = ""
    try:
        await state.repository.ping()
        instance = await state.repository.get_instance(signage_id)
        if instance is not None:
            caption = instance.location_name
    except DatastoreUnavailable:
        logger.warning("QR for signage %s rendered without caption (database unavailable)", signage_id)

    image = generate_signage_qr(build_play_url(base_url, signage_id, token), caption)
    return StreamingResponse(image, media_type="image/png", headers={
        "X-Access-Token": token,
        "Cache-Control": "no-store",
    })
