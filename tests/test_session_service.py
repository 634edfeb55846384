import asyncio

import pytest

from services.broadcast_service import BroadcastRegistry
from services.errors import (
    AlreadySubmitted,
    DatastoreUnavailable,
    InstanceInactive,
    InstanceNotFound,
    InvalidToken,
    ValidationFailed,
)
from services.session_service import (
    ParticipantDetails,
    SessionCoordinator,
    clamp_timer,
    normalize_email,
    normalize_phone,
)
from services.token_service import ShortLivedTokenStore
from models import ValidationSettings
from tests.conftest import FakeWebSocket, InMemoryRepository


@pytest.fixture
def coordinator(repository, clock):
    tokens = ShortLivedTokenStore(ttl_seconds=900, clock=clock)
    return SessionCoordinator(tokens, BroadcastRegistry(), repository, clock=clock)


def _person(**overrides):
    data = {"name": "Alex Kim", "email": "alex@example.com", "phone": "555-123-4567", "choice": "yes"}
    data.update(overrides)
    return ParticipantDetails(**data)


def _viewer(coordinator, signage_id):
    ws = FakeWebSocket()
    asyncio.run(coordinator.registry.register(signage_id, ws))
    return ws


def test_normalizers():
    assert normalize_email("  A@B.com ") == "a@b.com"
    assert normalize_phone("+1 (555) 123-4567") == "15551234567"


@pytest.mark.parametrize("given, expected", [(75, 60), (0, 1), (-5, 1), (30, 30), (None, 10), ("abc", 10)])
def test_clamp_timer(given, expected):
    assert clamp_timer(given) == expected


def test_relay_question_clamps_timer_and_stamps_server_time(coordinator, clock):
    viewer = _viewer(coordinator, "DEMO")
    token = coordinator.tokens.issue("DEMO")

    asyncio.run(coordinator.relay_question(token, "DEMO", 0, "How did you meet?", ["A", "B"], 75))
    asyncio.run(coordinator.relay_question(token, "DEMO", 1, "Next?", None, 0))

    first, second = viewer.sent[1], viewer.sent[2]
    assert first == {
        "type": "question_display",
        "index": 0,
        "question": "How did you meet?",
        "options": ["A", "B"],
        "timerSeconds": 60,
        "startedAt": int(clock.now * 1000),
    }
    assert second["timerSeconds"] == 1
    assert second["options"] == []


def test_relay_session_started_and_clear(coordinator):
    viewer = _viewer(coordinator, "DEMO")
    token = coordinator.tokens.issue("DEMO")

    asyncio.run(coordinator.relay_session_started(token, "DEMO"))
    asyncio.run(coordinator.relay_clear(token, "DEMO"))

    assert viewer.sent[1:] == [{"type": "session_started"}, {"type": "question_clear"}]


def test_relay_rejects_token_for_other_instance(coordinator):
    viewer = _viewer(coordinator, "DEMO")
    token = coordinator.tokens.issue("OTHER")

    with pytest.raises(InvalidToken):
        asyncio.run(coordinator.relay_session_started(token, "DEMO"))
    assert len(viewer.sent) == 1


def test_relay_rejects_expired_token(coordinator, clock):
    token = coordinator.tokens.issue("DEMO")
    clock.advance(901)

    with pytest.raises(InvalidToken):
        asyncio.run(coordinator.relay_clear(token, "DEMO"))


def test_finalize_scores_and_broadcasts_to_instance_only(coordinator, repository):
    repository.add_instance("X")
    repository.add_instance("Y")
    x1, x2, y = _viewer(coordinator, "X"), _viewer(coordinator, "X"), _viewer(coordinator, "Y")
    token = coordinator.tokens.issue("X")

    result = asyncio.run(coordinator.finalize_submission(token, "X", _person(), {"q1": "Option B"}))

    assert result.total_points == 3
    assert result.result_band.mobile.heading == "Keep trying!"
    assert x1.sent[-1] == x2.sent[-1]
    assert x1.sent[-1]["type"] == "questionnaire_submitted"
    assert x1.sent[-1]["participantName"] == "Alex Kim"
    assert x1.sent[-1]["totalPoints"] == 3
    assert y.sent == [{"type": "connected", "instanceId": "Y"}]
    stored = repository.sessions[-1]
    assert (stored["signage_id"], stored["answers"], stored["total_points"]) == ("X", {"q1": "Option B"}, 3)


def test_finalize_rejects_bad_token_before_touching_datastore(coordinator, repository):
    repository.available = False

    with pytest.raises(InvalidToken):
        asyncio.run(coordinator.finalize_submission("nope", "DEMO", _person(), {}))
    with pytest.raises(InvalidToken):
        asyncio.run(coordinator.finalize_submission(None, "DEMO", _person(), {}))


@pytest.mark.parametrize("overrides, message", [
    ({"name": "  "}, "Name is required"),
    ({"email": ""}, "Email is required"),
    ({"email": "not-an-email"}, "Invalid email"),
    ({"phone": ""}, "Phone is required"),
    ({"phone": "555-1234"}, "Phone must have at least 10 digits"),
])
def test_finalize_validates_participant(coordinator, overrides, message):
    token = coordinator.tokens.issue("DEMO")

    with pytest.raises(ValidationFailed) as exc:
        asyncio.run(coordinator.finalize_submission(token, "DEMO", _person(**overrides), {}))
    assert exc.value.message == message


def test_partner_is_validated_only_in_couple_mode(coordinator, repository):
    token = coordinator.tokens.issue("DEMO")
    bad_partner = _person(name="", email="partner@example.com", phone="5559876543")

    asyncio.run(coordinator.finalize_submission(token, "DEMO", _person(), {}, mode="single", person2=bad_partner))
    assert repository.participants[-1]["partner_name"] is None

    with pytest.raises(ValidationFailed) as exc:
        asyncio.run(coordinator.finalize_submission(
            token, "DEMO", _person(email="b@example.com", phone="5550000000"), {}, mode="couple", person2=bad_partner
        ))
    assert exc.value.message == "Partner name is required"


def test_finalize_missing_and_inactive_instance(coordinator, repository):
    repository.add_instance("OFF", is_active=False)

    with pytest.raises(InstanceNotFound):
        asyncio.run(coordinator.finalize_submission(coordinator.tokens.issue("NOPE"), "NOPE", _person(), {}))
    with pytest.raises(InstanceInactive):
        asyncio.run(coordinator.finalize_submission(coordinator.tokens.issue("OFF"), "OFF", _person(), {}))
    assert repository.sessions == []


def test_finalize_reports_datastore_outage(coordinator, repository):
    repository.available = False

    with pytest.raises(DatastoreUnavailable):
        asyncio.run(coordinator.finalize_submission(coordinator.tokens.issue("DEMO"), "DEMO", _person(), {}))


def test_duplicate_submission_is_rejected_after_normalization(coordinator, repository):
    viewer = _viewer(coordinator, "DEMO")
    token = coordinator.tokens.issue("DEMO")
    asyncio.run(coordinator.finalize_submission(token, "DEMO", _person(email="a@b.com"), {}))
    sent_before = len(viewer.sent)

    with pytest.raises(AlreadySubmitted):
        asyncio.run(coordinator.finalize_submission(
            token, "DEMO", _person(email="A@B.com ", phone="5550000000"), {}
        ))
    assert len(repository.sessions) == 1
    assert len(viewer.sent) == sent_before


def test_duplicate_by_phone_is_rejected(coordinator):
    token = coordinator.tokens.issue("DEMO")
    asyncio.run(coordinator.finalize_submission(token, "DEMO", _person(phone="555 123 4567"), {}))

    with pytest.raises(AlreadySubmitted):
        asyncio.run(coordinator.finalize_submission(
            token, "DEMO", _person(email="other@example.com", phone="(555)123-4567"), {}
        ))


def test_multiple_submissions_allowed_by_config(coordinator, repository):
    repository.validation["DEMO"] = ValidationSettings(allow_multiple_submissions=True)
    token = coordinator.tokens.issue("DEMO")

    for _ in range(2):
        asyncio.run(coordinator.finalize_submission(token, "DEMO", _person(), {}))

    assert len(repository.sessions) == 2


def test_branch_defaults_to_first_initial_option(coordinator, repository):
    token = coordinator.tokens.issue("DEMO")

    result = asyncio.run(coordinator.finalize_submission(token, "DEMO", _person(choice=None), {"q1": "Option C"}))

    assert repository.participants[-1]["branch"] == "yes"
    assert result.total_points == 4


def test_unknown_branch_scores_zero_questions(coordinator, repository):
    token = coordinator.tokens.issue("DEMO")

    result = asyncio.run(coordinator.finalize_submission(token, "DEMO", _person(choice="maybe"), {"q1": "Option C"}))

    assert result.total_points == 0


def test_empty_questionnaire_falls_back_to_default(clock):
    repository = InMemoryRepository()
    repository.add_instance("BLANK", questionnaire={})
    coordinator = SessionCoordinator(ShortLivedTokenStore(900, clock=clock), BroadcastRegistry(), repository, clock)
    token = coordinator.tokens.issue("BLANK")

    result = asyncio.run(coordinator.finalize_submission(token, "BLANK", _person(choice=None), {"q1_yes": "Option B"}))

    assert result.total_points == 2
    assert result.result_band.signage.message == "Thanks!"
