import sys
from pydantic_settings import BaseSettings

DIFFICULTY_LEVELS = ("easy", "medium", "hard")


class Settings(BaseSettings):
    # Database path - can be overridden via DATABASE_PATH env var for Docker
    database_path: str = "quiz_engine.db"
    # Environment: "dev" (default) or "prod"
    env: str = "dev"
    # CORS origins for prod (comma-separated)
    cors_origins: str = ""

    # Attempt defaults, used when a quiz row leaves them unset
    default_question_count: int = 10
    default_starting_difficulty: str = "easy"

    # Analytics thresholds (percentages)
    at_risk_threshold: float = 50.0
    pass_threshold: float = 60.0

    # Guest (in-memory) quiz flow
    guest_question_count: int = 10
    guest_session_ttl_minutes: int = 60

    # Recommendation hook run after an attempt completes
    recommendations_enabled: bool = True
    # AI provider: "openai" or "anthropic"
    ai_provider: str = "openai"
    api_key: str = ""
    anthropic_api_key: str = ""
    model_name: str = "gpt-4o"
    cheap_model: str = "gpt-4o-mini"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def _load_settings() -> Settings:
    """Load settings and reject values the engine cannot run with."""
    s = Settings()

    for name in ("at_risk_threshold", "pass_threshold"):
        value = getattr(s, name)
        if not 0 <= value <= 100:
            print(f"ERROR: {name.upper()} must be between 0 and 100 (got {value}).", file=sys.stderr)
            sys.exit(1)

    for name in ("default_question_count", "guest_question_count", "guest_session_ttl_minutes"):
        if getattr(s, name) < 1:
            print(f"ERROR: {name.upper()} must be at least 1.", file=sys.stderr)
            sys.exit(1)

    if s.default_starting_difficulty not in DIFFICULTY_LEVELS:
        print(
            "ERROR: DEFAULT_STARTING_DIFFICULTY must be one of: " + ", ".join(DIFFICULTY_LEVELS),
            file=sys.stderr,
        )
        sys.exit(1)

    return s


settings = _load_settings()
