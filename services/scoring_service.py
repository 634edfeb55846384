import re
from typing import Mapping, Optional, Sequence

from models import (
    MIN_POINTS,
    MobileMessage,
    Question,
    ResultBand,
    SignageMessage,
    TextConfig,
    clamp_points,
)

_TRAILING_PUNCTUATION = re.compile(r"[!?.]+\s*$")


def score_question(question: Question, answer) -> int:
    # 시간 초과(응답 없음)나 설정에서 사라진 옵션은 최저점 처리
    if answer is None:
        return MIN_POINTS
    for option in question.options:
        if option.label == str(answer):
            return clamp_points(option.points)
    return MIN_POINTS


def score(answers: Mapping[str, Optional[str]], questions: Sequence[Question]) -> int:
    """선택지(branch)의 질문 목록 전체를 돌며 점수를 합산한다. 가중치/정규화 없음."""
    answers = answers or {}
    return sum(score_question(question, answers.get(question.id)) for question in questions)


def default_band(text_config: Optional[TextConfig] = None) -> ResultBand:
    tc = text_config or TextConfig()
    return ResultBand(
        signage=SignageMessage(emoji=tc.result_mobile_emoji, message="Thank you!"),
        mobile=MobileMessage(
            emoji=tc.result_mobile_emoji,
            heading=tc.result_mobile_heading,
            message=tc.result_mobile_message,
        ),
    )


def resolve_band(
    total_points: int,
    branch_id: Optional[str],
    bands: Sequence[ResultBand],
    text_config: Optional[TextConfig] = None,
) -> ResultBand:
    """설정된 순서대로 첫 번째로 맞는 구간을 고른다. 없으면 첫 구간, 그것도 없으면 기본값."""
    for band in bands:
        if band.branch is not None and band.branch != branch_id:
            continue
        if band.min_score <= total_points <= band.max_score:
            return band
    if bands:
        return bands[0]
    return default_band(text_config)


def _normalize_text(value: Optional[str]) -> str:
    text = (value or "").strip().lower()
    return _TRAILING_PUNCTUATION.sub("", text).strip()


def without_duplicate_message(band: ResultBand) -> ResultBand:
    # "Thank you!" / "Thank you" 처럼 제목과 본문이 같으면 본문을 비움 (표시용 규칙)
    mobile = band.mobile
    if mobile.message and _normalize_text(mobile.message) == _normalize_text(mobile.heading or "Thank You!"):
        return band.model_copy(update={"mobile": mobile.model_copy(update={"message": ""})})
    return band
