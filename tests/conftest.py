import json
from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from models import BackgroundConfig, QuestionnaireConfig, TextConfig, ValidationSettings
from services.errors import DatastoreUnavailable
from services.token_service import ShortLivedTokenStore
from state import AppState

DEMO_QUESTIONNAIRE = {
    "initial_options": [{"id": "yes", "label": "Yes!"}],
    "questions_by_branch": {
        "yes": [
            {
                "id": "q1",
                "label": "How did you meet?",
                "options": [
                    {"label": "Option A", "points": 1},
                    {"label": "Option B", "points": 2},
                    {"label": "Option C", "points": 3},
                ],
                "timer_seconds": 10,
            },
            {
                "id": "q2",
                "label": "Favorite date idea?",
                "options": [{"label": "Dinner", "points": 1}],
                "timer_seconds": 10,
            },
        ]
    },
    "result_bands": [
        {
            "min_score": 0, "max_score": 4,
            "signage": {"emoji": "😊", "message": "Thanks!"},
            "mobile": {"heading": "Keep trying!", "message": "Your story is just beginning"},
        },
        {
            "min_score": 5, "max_score": 999,
            "signage": {"emoji": "🎉", "message": "Great!"},
            "mobile": {"heading": "Perfect match!", "message": "You're meant to be!"},
        },
    ],
}


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWebSocket:
    def __init__(self, state=WebSocketState.CONNECTED, fail=False):
        self.application_state = state
        self.fail = fail
        self.sent = []

    async def accept(self) -> None:
        pass

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))


class InMemoryRepository:
    """MongoRepository 와 같은 메서드를 가진 테스트용 저장소"""

    def __init__(self):
        self.available = True
        self.instances = {}
        self.validation = {}
        self.participants = []
        self.sessions = []
        self.credentials = {}

    def add_instance(self, signage_id, questionnaire=None, is_active=True, text_config=None, location_name="Demo"):
        instance = SimpleNamespace(
            signage_id=signage_id,
            location_name=location_name,
            is_active=is_active,
            timezone="UTC",
            logo_url=None,
            background_config=BackgroundConfig(type="solid", color="#ffffff"),
            questionnaire_config=QuestionnaireConfig.model_validate(
                DEMO_QUESTIONNAIRE if questionnaire is None else questionnaire
            ),
            text_config=text_config or TextConfig(),
            created_at=datetime(2026, 2, 14),
        )
        self.instances[signage_id] = instance
        return instance

    async def ping(self):
        if not self.available:
            raise DatastoreUnavailable()

    async def get_instance(self, signage_id):
        return self.instances.get(signage_id)

    async def update_background(self, signage_id, background):
        instance = self.instances.get(signage_id)
        if instance is None:
            return False
        instance.background_config = background
        return True

    async def instance_stats(self, signage_id):
        return {
            "total_users": sum(1 for p in self.participants if p["signage_id"] == signage_id),
            "total_sessions": sum(1 for s in self.sessions if s["signage_id"] == signage_id),
        }

    async def get_validation_config(self, signage_id):
        return self.validation.get(signage_id, ValidationSettings())

    async def save_validation_config(self, signage_id, settings):
        self.validation[signage_id] = settings
        return settings

    async def allows_multiple_submissions(self, signage_id):
        return (await self.get_validation_config(signage_id)).allow_multiple_submissions

    async def has_prior_submission(self, signage_id, email_normalized, phone_normalized):
        return any(
            p["signage_id"] == signage_id
            and (p["email_normalized"] == email_normalized or p["phone_normalized"] == phone_normalized)
            for p in self.participants
        )

    async def record_submission(self, signage_id, person1, person2, email_normalized, phone_normalized,
                                branch, answers, total_points, enforce_unique):
        participant_id = f"p{len(self.participants) + 1}"
        self.participants.append({
            "id": participant_id,
            "signage_id": signage_id,
            "name": person1.name,
            "email": person1.email,
            "phone": person1.phone,
            "email_normalized": email_normalized,
            "phone_normalized": phone_normalized,
            "branch": branch,
            "partner_name": person2.name if person2 else None,
            "partner_email": person2.email if person2 else None,
            "partner_phone": person2.phone if person2 else None,
            "partner_branch": person2.choice if person2 else None,
            "created_at": datetime(2026, 2, 14, 12, len(self.participants)),
        })
        self.sessions.append({
            "id": f"s{len(self.sessions) + 1}",
            "participant_id": participant_id,
            "signage_id": signage_id,
            "answers": dict(answers),
            "total_points": total_points,
            "status": "submitted",
            "created_at": datetime(2026, 2, 14, 12, len(self.sessions)),
        })

    async def list_participants(self, signage_id=None, limit=100, offset=0):
        rows = [p for p in reversed(self.participants) if not signage_id or p["signage_id"] == signage_id]
        return [SimpleNamespace(**p) for p in rows[offset:offset + limit]]

    async def list_sessions(self, signage_id=None, status=None, limit=100, offset=0):
        by_id = {p["id"]: SimpleNamespace(**p) for p in self.participants}
        rows = [
            s for s in reversed(self.sessions)
            if (not signage_id or s["signage_id"] == signage_id) and (not status or s["status"] == status)
        ]
        return [(SimpleNamespace(**s), by_id.get(s["participant_id"])) for s in rows[offset:offset + limit]]

    async def get_admin_credential(self, signage_id):
        return self.credentials.get(signage_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    repo = InMemoryRepository()
    repo.add_instance("DEMO")
    return repo


@pytest.fixture
def app_state(repository, clock):
    return AppState.build(repository, tokens=ShortLivedTokenStore(ttl_seconds=900, clock=clock))


@pytest.fixture
def client(app_state):
    from main import create_app

    app = create_app(init_database=False, state=app_state)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def person():
    return {"name": "Alex Kim", "email": "alex@example.com", "phone": "(555) 123-4567", "choice": "yes"}
