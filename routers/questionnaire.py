from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

import config
from services.errors import ValidationFailed
from services.session_service import ParticipantDetails
from state import AppState, get_state

router = APIRouter(prefix=f"{config.BASE_PATH}/api", tags=["questionnaire"])


class PersonRequest(BaseModel):
    # 필수 여부는 토큰 검사 뒤에 서비스에서 확인 (그래야 만료 토큰이 먼저 401)
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    choice: Optional[str] = Field(None, validation_alias=AliasChoices("choice", "gender"))

    def to_details(self) -> ParticipantDetails:
        return ParticipantDetails(name=self.name, email=self.email, phone=self.phone, choice=self.choice)


class BroadcastQuestionRequest(BaseModel):
    instance_id: Optional[str] = Field(None, validation_alias=AliasChoices("instanceId", "signageId"))
    token: Optional[str] = None
    session_started: bool = Field(False, validation_alias=AliasChoices("sessionStarted", "session_started"))
    clear: bool = False
    index: Optional[int] = Field(None, validation_alias=AliasChoices("index", "questionIndex"))
    question: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    timer_seconds: Optional[int] = Field(None, validation_alias=AliasChoices("timerSeconds", "timer_seconds"))


class SubmitQuestionnaireRequest(BaseModel):
    instance_id: Optional[str] = Field(None, validation_alias=AliasChoices("instanceId", "signageId"))
    token: Optional[str] = None
    mode: Optional[str] = None
    person1: Optional[PersonRequest] = None
    person2: Optional[PersonRequest] = None
    answers: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("answers", "questionnaireAnswers")
    )


# 1. 폰 화면 진행 상황 -> 사이니지 화면으로 중계
@router.post("/questionnaire/broadcast-question")
async def broadcast_question(body: BroadcastQuestionRequest, state: AppState = Depends(get_state)):
    if not body.instance_id or not body.token:
        raise ValidationFailed("instanceId and token required")

    coordinator = state.coordinator
    if body.session_started:
        await coordinator.relay_session_started(body.token, body.instance_id)
    elif body.clear:
        await coordinator.relay_clear(body.token, body.instance_id)
    else:
        # 질문 표시는 index/question 이 있어야 함 (토큰이 틀렸으면 401 이 먼저)
        coordinator.check_token(body.token, body.instance_id)
        if body.index is None or not body.question:
            raise ValidationFailed("index and question required when not clearing")
        await coordinator.relay_question(
            body.token, body.instance_id, body.index, body.question, body.options, body.timer_seconds
        )
    return {"success": True}


# 2. 설문 최종 제출
@router.post("/submit-questionnaire")
async def submit_questionnaire(body: SubmitQuestionnaireRequest, state: AppState = Depends(get_state)):
    result = await state.coordinator.finalize_submission(
        token=body.token,
        signage_id=body.instance_id,
        person1=body.person1.to_details() if body.person1 else None,
        answers=body.answers,
        mode=body.mode,
        person2=body.person2.to_details() if body.person2 else None,
    )
    return {
        "success": True,
        "message": "Thank you for your submission!",
        "totalPoints": result.total_points,
        "resultBand": result.result_band.model_dump(),
    }
