from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Supabase
    supabase_url: str
    supabase_service_key: str
    supabase_anon_key: str

    # AI
    anthropic_api_key: str
    receipt_model: str = "claude-sonnet-4-5-20250514"

    # Redis / Celery
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # Gmail
    gmail_client_id: str = ""
    gmail_client_secret: str = ""
    gmail_redirect_uri: str = ""
    gmail_scan_lookback_days: int = 7
    gmail_scan_max_results: int = 50
    gmail_sync_time_limit_seconds: int = 600
    gmail_lock_max_retries: int = 5
    gmail_lock_retry_delay_seconds: float = 0.2
    gmail_oauth_state_secret: str = ""
    gmail_oauth_state_ttl_seconds: int = 600

    # App
    app_base_url: str = "http://localhost:5173"
    receipts_bucket: str = "receipts"
    max_receipt_size_mb: int = 10

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
