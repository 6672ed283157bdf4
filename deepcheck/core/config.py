"""
Application configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. All secrets are injected via environment — never
hard-coded.

To extend: add new fields here and document them in .env.example.
See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── CORS ──────────────────────────────────────────────────────
    # Comma-separated allowed origins for the web front-end.
    cors_origins_str: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_str.split(",") if o.strip()]

    # ─── Analysis engine ───────────────────────────────────────────
    # "deterministic" | "gemini" | "remote"
    analysis_engine: str = "deterministic"
    analysis_timeout_seconds: float = 60.0

    # Get from https://aistudio.google.com/
    gemini_api_key: str = ""

    # When True, GeminiClient returns canned mock responses.
    # Always True in tests; set False in production with a real key.
    ai_mock_mode: bool = True

    # External detection service used by the "remote" engine.
    remote_engine_url: str = ""
    remote_engine_api_key: str = ""

    # ─── Media ─────────────────────────────────────────────────────
    max_upload_bytes: int = 50 * 1024 * 1024
    fetch_timeout_seconds: float = 15.0

    # ─── Recording ─────────────────────────────────────────────────
    recording_duration_seconds: float = 5.0
    # When True a finished recording is submitted for analysis straight away.
    recording_auto_analyze: bool = True

    # ─── Sessions ──────────────────────────────────────────────────
    max_sessions: int = 1000
    history_limit: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )


# Module-level singleton — import this everywhere instead of instantiating Settings()
settings = Settings()
