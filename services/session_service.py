"""
참가자 세션 흐름 조율.

폰 쪽 진행 상황(세션 시작 / 질문 표시 / 질문 지우기)을 사이니지 화면으로
중계하고, 마지막 제출을 검증 -> 채점 -> 저장 -> 방송 순서로 처리한다.
서버는 세션 객체를 따로 저장하지 않는다. 모든 호출은 토큰으로 다시 검증된다.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from models import ResultBand
from services import scoring_service
from services.broadcast_service import BroadcastRegistry
from services.errors import (
    AlreadySubmitted,
    InstanceInactive,
    InstanceNotFound,
    InvalidToken,
    ValidationFailed,
)
from services.signage_defaults import effective_questionnaire_config
from services.token_service import ShortLivedTokenStore

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PHONE_DIGITS = 10
MIN_TIMER_SECONDS = 1
MAX_TIMER_SECONDS = 60
DEFAULT_TIMER_SECONDS = 10
COUPLE_MODE = "couple"


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


def clamp_timer(timer_seconds) -> int:
    if timer_seconds is None:
        return DEFAULT_TIMER_SECONDS
    try:
        seconds = int(timer_seconds)
    except (TypeError, ValueError):
        return DEFAULT_TIMER_SECONDS
    return max(MIN_TIMER_SECONDS, min(MAX_TIMER_SECONDS, seconds))


@dataclass
class ParticipantDetails:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    choice: Optional[str] = None

    def cleaned(self) -> "ParticipantDetails":
        return ParticipantDetails(
            name=(self.name or "").strip(),
            email=(self.email or "").strip(),
            phone=(self.phone or "").strip(),
            choice=(self.choice or "").strip() or None,
        )


@dataclass
class SubmissionResult:
    total_points: int
    result_band: ResultBand
    is_couple: bool = False


def validate_participant(person: Optional[ParticipantDetails], partner: bool = False) -> ParticipantDetails:
    """이름/이메일/전화번호 검사. partner=True 면 메시지에 "Partner" 를 붙인다."""
    field = "Partner {}" if partner else "{}"
    if person is None:
        raise ValidationFailed("Partner details are required" if partner else "Participant details are required")

    person = person.cleaned()
    if not person.name:
        raise ValidationFailed(field.format("name is required").capitalize())
    if not person.email:
        raise ValidationFailed(field.format("email is required").capitalize())
    if not EMAIL_PATTERN.match(person.email):
        raise ValidationFailed("Invalid " + field.format("email").lower())
    if not person.phone:
        raise ValidationFailed(field.format("phone is required").capitalize())
    if len(normalize_phone(person.phone)) < MIN_PHONE_DIGITS:
        raise ValidationFailed(field.format(f"phone must have at least {MIN_PHONE_DIGITS} digits").capitalize())
    return person


class SessionCoordinator:
    def __init__(
        self,
        tokens: ShortLivedTokenStore,
        registry: BroadcastRegistry,
        repository,
        clock: Callable[[], float] = time.time,
    ):
        self.tokens = tokens
        self.registry = registry
        self.repository = repository
        self._clock = clock

    def check_token(self, token: Optional[str], signage_id: Optional[str]) -> None:
        if not token:
            raise InvalidToken("Access token required. Please scan the QR code.")
        if not self.tokens.validate(token, signage_id):
            raise InvalidToken()

    # --- [중계: 폰 화면 이벤트 -> 사이니지 화면 이벤트] ---

    async def relay_session_started(self, token: str, signage_id: str) -> Dict:
        self.check_token(token, signage_id)
        message = {"type": "session_started"}
        await self.registry.broadcast(signage_id, message)
        logger.debug("Session started on signage %s", signage_id)
        return message

    async def relay_question(
        self,
        token: str,
        signage_id: str,
        index: int,
        question_text: str,
        option_labels: Optional[List[str]],
        timer_seconds=None,
    ) -> Dict:
        self.check_token(token, signage_id)
        # startedAt 은 서버 시각 -> 모든 화면이 같은 카운트다운을 계산
        message = {
            "type": "question_display",
            "index": index,
            "question": question_text,
            "options": list(option_labels or []),
            "timerSeconds": clamp_timer(timer_seconds),
            "startedAt": int(self._clock() * 1000),
        }
        await self.registry.broadcast(signage_id, message)
        logger.debug("Question %s shown on signage %s", index, signage_id)
        return message

    async def relay_clear(self, token: str, signage_id: str) -> Dict:
        self.check_token(token, signage_id)
        message = {"type": "question_clear"}
        await self.registry.broadcast(signage_id, message)
        return message

    # --- [최종 제출] ---

    async def finalize_submission(
        self,
        token: str,
        signage_id: str,
        person1: Optional[ParticipantDetails],
        answers: Optional[Mapping[str, Optional[str]]] = None,
        mode: Optional[str] = None,
        person2: Optional[ParticipantDetails] = None,
    ) -> SubmissionResult:
        # 1. 토큰 검사 (DB 건드리기 전에 거절)
        self.check_token(token, signage_id)

        # 2. 입력값 검사
        person1 = validate_participant(person1)
        is_couple = mode == COUPLE_MODE
        if is_couple:
            person2 = validate_participant(person2, partner=True)
        else:
            person2 = None

        # 3. 인스턴스 확인
        await self.repository.ping()
        instance = await self.repository.get_instance(signage_id)
        if instance is None:
            raise InstanceNotFound()
        if not instance.is_active:
            raise InstanceInactive()

        # 4~6. 선택지 결정 -> 채점 -> 결과 구간
        # 빈 설정이면 화면에 보여준 기본 설문의 문항과 결과 구간으로 채점함 (0점 + 기본 문구가 아님)
        questionnaire = effective_questionnaire_config(instance.questionnaire_config)
        branch = person1.choice or questionnaire.first_branch_id()
        questions = questionnaire.questions_by_branch.get(branch, [])
        answers = dict(answers or {})
        total_points = scoring_service.score(answers, questions)
        band = scoring_service.resolve_band(total_points, branch, questionnaire.result_bands, instance.text_config)
        band = scoring_service.without_duplicate_message(band)

        # 7~9. 중복 검사 후 저장 (정책상 허용되지 않으면 유니크 인덱스로 한 번 더 막음)
        email_normalized = normalize_email(person1.email)
        phone_normalized = normalize_phone(person1.phone)
        enforce_unique = not await self.repository.allows_multiple_submissions(signage_id)
        if enforce_unique and await self.repository.has_prior_submission(
            signage_id, email_normalized, phone_normalized
        ):
            raise AlreadySubmitted()

        await self.repository.record_submission(
            signage_id=signage_id,
            person1=person1,
            person2=person2,
            email_normalized=email_normalized,
            phone_normalized=phone_normalized,
            branch=branch,
            answers=answers,
            total_points=total_points,
            enforce_unique=enforce_unique,
        )
        logger.info("Questionnaire submitted on signage %s (%d points)", signage_id, total_points)

        # 10. 사이니지 화면 -> 감사 화면으로 전환
        await self.registry.broadcast(signage_id, {
            "type": "questionnaire_submitted",
            "participantName": person1.name,
            "isCouple": is_couple,
            "totalPoints": total_points,
            "resultBand": band.model_dump(),
        })

        # 11. 폰 화면용 결과
        return SubmissionResult(total_points=total_points, result_band=band, is_couple=is_couple)
