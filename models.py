from typing import Dict, List, Literal, Optional
from typing import Annotated
from datetime import datetime
from beanie import Document, Indexed, PydanticObjectId
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pymongo import ASCENDING, IndexModel

MIN_POINTS = 1
MAX_POINTS = 4


def clamp_points(value) -> int:
    try:
        points = int(value)
    except (TypeError, ValueError):
        return MIN_POINTS
    return max(MIN_POINTS, min(MAX_POINTS, points))


# --- [설문 설정: 인스턴스 문서 안에 들어가는 값들] ---

class InitialOption(BaseModel):
    id: str
    label: str


class AnswerOption(BaseModel):
    label: str
    points: int = MIN_POINTS

    # 관리자 화면과 동일하게 1~4 범위로 고정
    @field_validator("points", mode="before")
    @classmethod
    def _clamp(cls, value):
        return clamp_points(value)


class Question(BaseModel):
    id: str
    label: str
    type: str = "mcq"
    options: List[AnswerOption] = Field(default_factory=list)
    timer_seconds: int = 10

    @field_validator("options", mode="before")
    @classmethod
    def _plain_labels(cls, value):
        # 예전 설정은 옵션을 문자열로만 저장함 -> 1점짜리 옵션으로 취급
        if isinstance(value, list):
            return [{"label": v, "points": MIN_POINTS} if isinstance(v, str) else v for v in value]
        return value


class SignageMessage(BaseModel):
    emoji: str = ""
    message: str = ""
    subtext: str = ""


class MobileMessage(BaseModel):
    emoji: str = ""
    heading: str = ""
    message: str = ""


class ResultBand(BaseModel):
    branch: Optional[str] = None  # None 이면 모든 선택지에 적용
    min_score: int = 0
    max_score: int = 999
    signage: SignageMessage = Field(default_factory=SignageMessage)
    mobile: MobileMessage = Field(default_factory=MobileMessage)


class QuestionnaireConfig(BaseModel):
    initial_options: List[InitialOption] = Field(default_factory=list)
    # 예전 설정 키 questions_by_gender 도 받음
    questions_by_branch: Dict[str, List[Question]] = Field(
        default_factory=dict, validation_alias=AliasChoices("questions_by_branch", "questions_by_gender")
    )
    result_bands: List[ResultBand] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.initial_options and not self.questions_by_branch

    def first_branch_id(self) -> str:
        return self.initial_options[0].id if self.initial_options else "yes"


class TextConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    idle_heading: str = "Are you ready to play?"
    idle_subtitle: str = "Scan to begin"
    session_active_message: str = "Session in progress - use your phone"
    footer_text: str = "Use your phone camera to scan"
    result_mobile_heading: str = "Thank You!"
    result_mobile_message: str = "Your response has been submitted."
    result_mobile_emoji: str = "💕"


class BackgroundConfig(BaseModel):
    type: Literal["gradient", "solid", "image"]
    colors: List[str] = Field(default_factory=list)
    color: Optional[str] = None
    image_url: Optional[str] = None


class ValidationSettings(BaseModel):
    allow_multiple_submissions: bool = False


# --- [MongoDB 컬렉션] ---

# 1. 사이니지(설치 장소) 모델
class SignageInstance(Document):
    # 외부에 노출되는 ID (QR/URL/웹소켓 경로에 들어감)
    signage_id: Annotated[str, Indexed(unique=True)]
    location_name: str
    is_active: bool = True
    timezone: str = "UTC"
    logo_url: Optional[str] = None

    background_config: BackgroundConfig
    questionnaire_config: QuestionnaireConfig = Field(default_factory=QuestionnaireConfig)
    text_config: TextConfig = Field(default_factory=TextConfig)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "signage_instances"


# 2. 중복 제출 정책
class ValidationConfig(Document):
    signage_id: Annotated[str, Indexed(unique=True)]
    allow_multiple_submissions: bool = False
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "validation_configs"


# 3. 참가자 정보
class Participant(Document):
    signage_id: Annotated[str, Indexed()]
    name: str
    email: str
    phone: str
    email_normalized: Annotated[str, Indexed()]
    phone_normalized: Annotated[str, Indexed()]
    branch: Optional[str] = None

    partner_name: Optional[str] = None
    partner_email: Optional[str] = None
    partner_phone: Optional[str] = None
    partner_branch: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "participants"


# 4. 설문 제출 기록
class QuestionnaireSession(Document):
    participant_id: PydanticObjectId
    signage_id: Annotated[str, Indexed()]
    answers: Dict[str, Optional[str]] = Field(default_factory=dict)
    total_points: int
    status: str = "submitted"

    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "questionnaire_sessions"


# 5. [중복 방지] (사이니지, 이메일/전화) 유니크 인덱스
class SubmissionClaim(Document):
    signage_id: str
    key: str  # "email:<정규화값>" 또는 "phone:<정규화값>"

    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "submission_claims"
        indexes = [
            IndexModel([("signage_id", ASCENDING), ("key", ASCENDING)], unique=True),
        ]


# 6. 인스턴스 관리자 로그인 정보
class InstanceAdminCredential(Document):
    signage_id: Annotated[str, Indexed(unique=True)]
    email: str
    password_hash: str

    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "instance_admin_credentials"


DOCUMENT_MODELS = [
    SignageInstance,
    ValidationConfig,
    Participant,
    QuestionnaireSession,
    SubmissionClaim,
    InstanceAdminCredential,
]
