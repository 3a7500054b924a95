"""Application configuration"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # Supabase
    supabase_url: str
    supabase_service_role_key: str
    supabase_anon_key: str

    # Email (Resend) - email integrations record an error when unset
    resend_api_key: str = ""
    email_from: str = "FormsEdge <notifications@formsedge.app>"

    # Application
    environment: str = "development"
    cors_origins: list[str] = ["*"]
    frontend_url: str = "https://formsedge.app"

    # Outbound webhooks
    webhook_timeout_seconds: float = 30.0
    webhook_user_agent: str = "FormsEdge-Webhook/1.0"
    webhook_response_body_limit: int = 5000
    webhook_max_attempts: int = 5
    webhook_retry_base_minutes: int = 1
    webhook_retry_interval_minutes: int = 5

    # Status lookups (admin role, feature flags, pricing)
    status_cache_ttl_seconds: float = 30.0

    enable_scheduler: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
