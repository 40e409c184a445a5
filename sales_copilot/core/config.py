"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── Postgres ─────────────────────────────────────────
    postgres_user: str = "analyst"
    postgres_password: str = "analyst_pw"
    postgres_db: str = "sales"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = 10

    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | anthropic | openai
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    default_model: str = "claude-3-haiku-20240307"
    chat_max_tokens: int = 4096
    chat_temperature: float = 0.7

    # Follow-up "explain the numbers" call: cheaper model, smaller budget
    explanation_model: str = "claude-3-haiku-20240307"
    explanation_max_tokens: int = 1000

    # Second LLM pass that restyles a chart the model produced without a query
    chart_redesign_enabled: bool = True
    chart_redesign_max_tokens: int = 1500

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    streamlit_port: int = 8501
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
