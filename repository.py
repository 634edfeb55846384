"""
MongoDB(Beanie) 접근은 전부 여기서만 한다.

라우터/서비스는 이 클래스의 메서드만 호출하므로 테스트에서는 같은 메서드를 가진
메모리 저장소로 바꿔 끼울 수 있다.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from beanie.operators import In, Or
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from database import init_db
from models import (
    BackgroundConfig,
    InstanceAdminCredential,
    Participant,
    QuestionnaireSession,
    SignageInstance,
    SubmissionClaim,
    ValidationConfig,
    ValidationSettings,
)
from services.auth_service import hash_password
from services.errors import AlreadySubmitted, DatastoreUnavailable
from services.signage_defaults import (
    default_background_config,
    default_questionnaire_config,
    default_text_config,
)

logger = logging.getLogger(__name__)


class MongoRepository:
    def __init__(self):
        self.client = None

    async def connect(self) -> None:
        try:
            self.client = await init_db()
        except PyMongoError as e:
            # DB가 없어도 토큰/웹소켓 기능은 살아 있어야 하므로 기동은 계속함
            logger.error("MongoDB unavailable at startup: %s", e)
            self.client = None

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    async def ping(self) -> None:
        if self.client is None:
            await self.connect()
            if self.client is None:
                raise DatastoreUnavailable()
        try:
            await self.client.admin.command("ping")
        except ConnectionFailure as e:
            logger.warning("MongoDB ping failed: %s", e)
            raise DatastoreUnavailable() from e

    # --- [사이니지 인스턴스] ---

    async def get_instance(self, signage_id: str) -> Optional[SignageInstance]:
        return await SignageInstance.find_one(SignageInstance.signage_id == signage_id)

    async def list_instances(self) -> List[SignageInstance]:
        return await SignageInstance.find_all().sort("-created_at").to_list()

    async def create_instance(
        self,
        signage_id: str,
        location_name: str,
        timezone: str = "UTC",
        is_active: bool = True,
        background_config: Optional[BackgroundConfig] = None,
    ) -> Optional[SignageInstance]:
        instance = SignageInstance(
            signage_id=signage_id,
            location_name=location_name,
            timezone=timezone,
            is_active=is_active,
            background_config=background_config or default_background_config(),
            questionnaire_config=default_questionnaire_config(),
            text_config=default_text_config(),
        )
        try:
            await instance.insert()
        except DuplicateKeyError:
            return None
        await ValidationConfig(signage_id=signage_id).insert()
        logger.info("Signage instance %s created", signage_id)
        return instance

    async def update_instance(self, signage_id: str, changes: Dict) -> Optional[SignageInstance]:
        instance = await self.get_instance(signage_id)
        if instance is None:
            return None
        for field, value in changes.items():
            setattr(instance, field, value)
        await instance.save()
        logger.info("Signage instance %s updated (%s)", signage_id, ", ".join(changes))
        return instance

    async def update_background(self, signage_id: str, background: BackgroundConfig) -> bool:
        return await self.update_instance(signage_id, {"background_config": background}) is not None

    async def delete_instance(self, signage_id: str) -> bool:
        instance = await self.get_instance(signage_id)
        if instance is None:
            return False
        # 하위 데이터부터 지움
        await QuestionnaireSession.find(QuestionnaireSession.signage_id == signage_id).delete()
        await Participant.find(Participant.signage_id == signage_id).delete()
        await SubmissionClaim.find(SubmissionClaim.signage_id == signage_id).delete()
        await ValidationConfig.find(ValidationConfig.signage_id == signage_id).delete()
        await InstanceAdminCredential.find(InstanceAdminCredential.signage_id == signage_id).delete()
        await instance.delete()
        logger.info("Signage instance %s deleted", signage_id)
        return True

    async def instance_stats(self, signage_id: str) -> Dict[str, int]:
        return {
            "total_users": await Participant.find(Participant.signage_id == signage_id).count(),
            "total_sessions": await QuestionnaireSession.find(QuestionnaireSession.signage_id == signage_id).count(),
        }

    # --- [관리자 대시보드 목록] ---

    async def list_participants(self, signage_id: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Participant]:
        query = Participant.find(Participant.signage_id == signage_id) if signage_id else Participant.find_all()
        return await query.sort("-created_at").skip(offset).limit(limit).to_list()

    async def list_sessions(
        self,
        signage_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Tuple[QuestionnaireSession, Optional[Participant]]]:
        filters = []
        if signage_id:
            filters.append(QuestionnaireSession.signage_id == signage_id)
        if status:
            filters.append(QuestionnaireSession.status == status)
        sessions = await QuestionnaireSession.find(*filters).sort("-created_at").skip(offset).limit(limit).to_list()

        # 참가자 정보는 한 번에 모아서 붙임
        participant_ids = list({s.participant_id for s in sessions})
        participants = {}
        if participant_ids:
            found = await Participant.find(In(Participant.id, participant_ids)).to_list()
            participants = {p.id: p for p in found}
        return [(s, participants.get(s.participant_id)) for s in sessions]

    # --- [중복 제출 정책] ---

    async def get_validation_config(self, signage_id: str) -> ValidationSettings:
        config = await ValidationConfig.find_one(ValidationConfig.signage_id == signage_id)
        if config is None:
            return ValidationSettings()
        return ValidationSettings(allow_multiple_submissions=config.allow_multiple_submissions)

    async def save_validation_config(self, signage_id: str, settings: ValidationSettings) -> ValidationSettings:
        config = await ValidationConfig.find_one(ValidationConfig.signage_id == signage_id)
        if config is None:
            config = ValidationConfig(signage_id=signage_id)
        config.allow_multiple_submissions = settings.allow_multiple_submissions
        config.updated_at = datetime.utcnow()
        await config.save()
        return settings

    async def allows_multiple_submissions(self, signage_id: str) -> bool:
        return (await self.get_validation_config(signage_id)).allow_multiple_submissions

    async def has_prior_submission(self, signage_id: str, email_normalized: str, phone_normalized: str) -> bool:
        existing = await Participant.find_one(
            Participant.signage_id == signage_id,
            Or(
                Participant.email_normalized == email_normalized,
                Participant.phone_normalized == phone_normalized,
            )
        )
        return existing is not None

    # --- [제출 저장] ---

    async def _claim(self, signage_id: str, email_normalized: str, phone_normalized: str) -> List[SubmissionClaim]:
        claims = []
        try:
            for key in (f"email:{email_normalized}", f"phone:{phone_normalized}"):
                claim = SubmissionClaim(signage_id=signage_id, key=key)
                await claim.insert()
                claims.append(claim)
        except PyMongoError as e:
            # 앞에서 잡은 키는 풀어 줌 (남아 있으면 그 사람은 영영 제출 못 함)
            for claim in claims:
                await claim.delete()
            if isinstance(e, DuplicateKeyError):
                # 동시에 들어온 같은 사람의 제출 -> 먼저 잡은 쪽만 통과
                raise AlreadySubmitted() from e
            raise
        return claims

    async def record_submission(
        self,
        signage_id: str,
        person1,
        person2,
        email_normalized: str,
        phone_normalized: str,
        branch: Optional[str],
        answers: Dict[str, Optional[str]],
        total_points: int,
        enforce_unique: bool,
    ) -> QuestionnaireSession:
        claims = await self._claim(signage_id, email_normalized, phone_normalized) if enforce_unique else []

        participant = Participant(
            signage_id=signage_id,
            name=person1.name,
            email=person1.email,
            phone=person1.phone,
            email_normalized=email_normalized,
            phone_normalized=phone_normalized,
            branch=branch,
            partner_name=person2.name if person2 else None,
            partner_email=person2.email if person2 else None,
            partner_phone=person2.phone if person2 else None,
            partner_branch=person2.choice if person2 else None,
        )
        try:
            await participant.insert()
            session = QuestionnaireSession(
                participant_id=participant.id,
                signage_id=signage_id,
                answers={key: (None if value is None else str(value)) for key, value in answers.items()},
                total_points=total_points,
            )
            await session.insert()
        except PyMongoError:
            # 두 번의 쓰기를 하나로 취급 -> 중간에 실패하면 앞에서 쓴 것 되돌림
            if participant.id is not None:
                await participant.delete()
            for claim in claims:
                await claim.delete()
            raise
        return session

    # --- [인스턴스 관리자 계정] ---

    async def get_admin_credential(self, signage_id: str) -> Optional[InstanceAdminCredential]:
        return await InstanceAdminCredential.find_one(InstanceAdminCredential.signage_id == signage_id)

    async def set_admin_credential(self, signage_id: str, email: str, password: str) -> InstanceAdminCredential:
        credential = await self.get_admin_credential(signage_id)
        if credential is None:
            credential = InstanceAdminCredential(signage_id=signage_id, email=email, password_hash="")
        credential.email = email.strip().lower()
        credential.password_hash = hash_password(password)
        credential.updated_at = datetime.utcnow()
        await credential.save()
        logger.info("Admin credentials set for signage %s", signage_id)
        return credential
