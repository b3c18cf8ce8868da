from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Webhooks, sync jobs and background work bypass RLS

    # Vapi (voice AI platform)
    vapi_api_key: Optional[str] = None
    vapi_base_url: str = "https://api.vapi.ai"
    vapi_webhook_secret: Optional[str] = None
    vapi_timeout_sec: float = 30.0
    vapi_max_retries: int = 3
    vapi_retry_delay_sec: float = 1.0

    # Make.com call-report scenario
    make_webhook_url: Optional[str] = None
    make_webhook_secret: Optional[str] = None

    # Scheduled jobs
    cron_secret: Optional[str] = None
    sync_scheduler_enabled: bool = False
    sync_interval_sec: int = 300

    # App
    app_name: str = "voice-matrix-backend"
    app_url: str = "http://localhost:8000"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def vapi_configured(self) -> bool:
        return bool(self.vapi_api_key)

    @property
    def make_configured(self) -> bool:
        return bool(self.make_webhook_url and self.make_webhook_secret)

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )


settings = Settings()
