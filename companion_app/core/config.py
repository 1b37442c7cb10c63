from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from typing import Optional

load_dotenv()

class Settings(BaseSettings):
    APP_NAME: str = "Companion Chat API"
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "app.log"

    # Database. DATABASE_URL wins; otherwise Supabase Postgres if a host is set; otherwise local SQLite.
    DATABASE_URL: Optional[str] = None
    SUPABASE_DB_HOST: Optional[str] = None
    SUPABASE_DB_PORT: int = 5432
    SUPABASE_DB_NAME: str = "postgres"
    SUPABASE_DB_USER: str = "postgres"
    SUPABASE_DB_PASSWORD: Optional[str] = None
    SUPABASE_DB_SSL_MODE: str = "require"

    # Identity (Google ID tokens)
    GOOGLE_CLIENT_ID: Optional[str] = None

    # Completion collaborator (Gemini)
    GOOGLE_API_KEY: Optional[str] = None
    MODEL_NAME: str = "gemini-2.0-flash"
    COMPLETION_TIMEOUT_SECONDS: float = 60.0

    # Sequence conflicts tolerated per message append before giving up with StorageError
    MESSAGE_APPEND_ATTEMPTS: int = 10

    # Context assembly
    HISTORY_WINDOW_TURNS: int = 10
    MAX_CONTEXT_TOKENS: int = 3500
    TOKENIZER_ENCODING: str = "cl100k_base"

    # Free tier quota
    FREE_MESSAGE_QUOTA: int = 10
    FREE_QUOTA_WINDOW_SECONDS: int = 86400

    # Entitlement
    ENTITLEMENT_GRACE_SECONDS: int = 86400
    ENTITLEMENT_WEBHOOK_SECRET: Optional[str] = None

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.SUPABASE_DB_HOST:
            if not self.SUPABASE_DB_PASSWORD:
                raise ValueError("SUPABASE_DB_PASSWORD is required when SUPABASE_DB_HOST is set.")
            return (
                f"postgresql://{self.SUPABASE_DB_USER}:{self.SUPABASE_DB_PASSWORD}"
                f"@{self.SUPABASE_DB_HOST}:{self.SUPABASE_DB_PORT}/{self.SUPABASE_DB_NAME}"
            )
        return "sqlite:///./companion.db"

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
