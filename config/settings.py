"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Passed explicitly into the orchestrator, the analysis engine and the
    command host; nothing in the core reads settings from global state.
    """

    # Workspace (downloads/ and logs/ live below it)
    workspace_root: Path = Path("./workspace")

    # HTTP fetching
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 0.5          # seconds between attempts
    chapter_delay: float = 0.2        # pause after each chapter
    chapter_concurrency: int = 2      # chapter bodies fetched at once per novel
    rank_concurrency: int = 2         # novel jobs at once during a rank scan

    # Evasion layer (headless / visible browser)
    evasion_enabled: bool = True
    evasion_visible: bool = False
    evasion_timeout: float = 45.0
    evasion_settle: float = 2.0       # wait after the page looks ready
    browser_user_data_dir: Path = Path("./workspace/browser_profile")

    # AI analysis (OpenAI-compatible API)
    ai_api_base: str = "https://api.openai.com/v1"
    ai_api_key: str = ""
    ai_model: str = "gpt-4o-mini"
    ai_temperature: float = 0.7
    ai_timeout: float = 120.0
    auto_analysis_prompt: str = ""    # empty = built-in default
    chapter_prompt: str = ""          # empty = built-in default
    auto_analysis_chapters: int = 5

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("max_retries", "chapter_concurrency", "auto_analysis_chapters")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Count settings must be >= 1")
        return v

    @field_validator("rank_concurrency")
    @classmethod
    def validate_rank_concurrency(cls, v: int) -> int:
        if not 1 <= v <= 3:
            raise ValueError("rank_concurrency must be between 1 and 3")
        return v

    @field_validator("request_timeout", "evasion_timeout", "ai_timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("retry_delay", "chapter_delay", "evasion_settle")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delay must be non-negative")
        return v

    @property
    def downloads_dir(self) -> Path:
        return self.workspace_root / "downloads"

    @property
    def log_dir(self) -> Path:
        return self.workspace_root / "logs"


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
