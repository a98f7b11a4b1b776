import os

from dotenv import load_dotenv
from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, ConfigDict, Field


def _env(name: str, default: str | None = None):
    return Field(default_factory=lambda: os.getenv(name, default))


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, validate_default=True)

    # Database (PostgreSQL)
    database_url: str | None = _env("DATABASE_URL")
    db_host: str = _env("DB_HOST", "127.0.0.1")
    db_port: int = _env("DB_PORT", "5432")
    db_name: str = _env("DB_NAME", "postgres")
    db_user: str = _env("DB_USER", "nl2sql_app")
    db_pass: str = _env("DB_PASS", "")
    db_schema: str = _env("DB_SCHEMA", "public")
    db_pool_min: int = _env("DB_POOL_MIN", "1")
    db_pool_max: int = _env("DB_POOL_MAX", "10")

    # Query safety
    statement_timeout_ms: int = _env("DB_STATEMENT_TIMEOUT_MS", "30000")

    # LLM (Ollama runtime)
    ollama_url: str = _env("OLLAMA_URL", "http://127.0.0.1:11434")
    ollama_model: str = _env("OLLAMA_MODEL", "mistral")
    ollama_timeout: float = _env("OLLAMA_TIMEOUT", "60")
    ollama_max_retries: int = _env("OLLAMA_MAX_RETRIES", "3")
    ollama_backoff_initial: float = _env("OLLAMA_BACKOFF_INITIAL", "2")
    ollama_backoff_max: float = _env("OLLAMA_BACKOFF_MAX", "10")

    # Service
    log_level: str = _env("LOG_LEVEL", "INFO")
    cors_origins: str = _env("CORS_ORIGINS", "*")

    @property
    def conninfo(self) -> str:
        if self.database_url:
            return self.database_url
        return make_conninfo(
            host=self.db_host,
            port=self.db_port,
            dbname=self.db_name,
            user=self.db_user,
            password=self.db_pass,
        )

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def load_settings() -> Settings:
    """
    Reads .env (if present) and builds the settings object once.
    The result is passed explicitly to the components that need it.
    """
    load_dotenv()
    return Settings()
