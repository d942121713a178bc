from pydantic_settings import BaseSettings
from pydantic import SecretStr
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    app_name: str = "Quizdesk Attempt API"
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_anon_key: SecretStr = SecretStr(os.getenv("SUPABASE_ANON_KEY", ""))
    supabase_service_role_key: SecretStr = SecretStr(os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""))

    # Timestamps written to attempts and responses
    timezone: str = os.getenv("QUIZDESK_TIMEZONE", "UTC")

    # Attempt engine
    tick_interval_seconds: float = float(os.getenv("TICK_INTERVAL_SECONDS", 1.0))
    persistence_retries: int = int(os.getenv("PERSISTENCE_RETRIES", 2))
    persistence_backoff_seconds: float = float(os.getenv("PERSISTENCE_BACKOFF_SECONDS", 0.2))
    session_max_age_seconds: int = int(os.getenv("SESSION_MAX_AGE_SECONDS", 4 * 3600))

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

settings = Settings()
