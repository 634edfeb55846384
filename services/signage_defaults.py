from models import BackgroundConfig, QuestionnaireConfig, TextConfig

DEFAULT_BACKGROUND_CONFIG = {
    "type": "gradient",
    "colors": ["#be185d", "#831843", "#500724"],
}


def _sample_question(branch_id: str) -> dict:
    return {
        "id": f"q1_{branch_id}",
        "label": "Question 1?",
        "type": "mcq",
        "options": [
            {"label": "Option A", "points": 1},
            {"label": "Option B", "points": 2},
            {"label": "Option C", "points": 3},
        ],
        "timer_seconds": 10,
    }


DEFAULT_QUESTIONNAIRE_CONFIG = {
    "initial_options": [
        {"id": "yes", "label": "Yes!"},
        {"id": "ready", "label": "Let's go!"},
    ],
    "questions_by_branch": {
        "yes": [_sample_question("yes")],
        "ready": [_sample_question("ready")],
    },
    "result_bands": [
        {
            "min_score": 0, "max_score": 4,
            "signage": {"emoji": "😊", "message": "Thanks!", "subtext": ""},
            "mobile": {"heading": "Thank you!", "message": "Your response has been submitted."},
        },
        {
            "min_score": 5, "max_score": 999,
            "signage": {"emoji": "🎉", "message": "Great!", "subtext": ""},
            "mobile": {"heading": "Thank you!", "message": "Your response has been submitted."},
        },
    ],
}


def default_background_config() -> BackgroundConfig:
    return BackgroundConfig.model_validate(DEFAULT_BACKGROUND_CONFIG)


def default_questionnaire_config() -> QuestionnaireConfig:
    return QuestionnaireConfig.model_validate(DEFAULT_QUESTIONNAIRE_CONFIG)


def default_text_config() -> TextConfig:
    return TextConfig()


def effective_questionnaire_config(config: QuestionnaireConfig) -> QuestionnaireConfig:
    # 설정이 비어 있으면 기본 설문을 보여줌 (채점도 같은 기본 설문 기준)
    if config is None or config.is_empty:
        return default_questionnaire_config()
    return config
