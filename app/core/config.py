"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: comma-separated (e.g. http://localhost:3000,https://quikpdf.pro). Empty = default list in code.
    cors_origins: str = ""
    # Public URL of the site; used for Stripe success/cancel redirects.
    public_base_url: str = "http://localhost:3000"

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS
    # ===========================================
    redis_url: str  # Required, no default
    idempotency_ttl: int = 86400  # webhook event ids, 24h

    # ===========================================
    # AUTH (signed session tokens)
    # ===========================================
    session_secret: str  # Required, no default
    session_ttl: int = 60 * 60 * 24 * 30  # 30 days
    session_cookie_name: str = "session"

    # ===========================================
    # STRIPE
    # ===========================================
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_monthly_price_id: str = ""
    stripe_yearly_price_id: str = ""
    stripe_one_time_price_id: str = ""

    # ===========================================
    # PAYWALL / WATERMARK
    # ===========================================
    watermark_text: str = "Created with Quikpdf.pro"
    watermark_font_size: int = 16
    # Completed operations per calendar month for logged-in users without watermark-free access.
    free_monthly_operation_limit: int = 5
    # True = a one-time claim counts only if its purchase id matches a recorded, unconsumed purchase.
    one_time_strict_verification: bool = False

    # ===========================================
    # UPLOADS
    # ===========================================
    max_file_size_mb: int = 100
    max_merge_files: int = 20
    max_images: int = 50
    allowed_image_types: str = "image/jpeg,image/png,image/webp"

    # ===========================================
    # CONVERSION SERVICE
    # ===========================================
    conversion_service_url: str = "http://127.0.0.1:8001"
    conversion_timeout: float = 120.0
    conversion_health_timeout: float = 5.0

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("allowed_image_types")
    @classmethod
    def parse_image_types(cls, v: str) -> str:
        """Validate MIME list format."""
        return v.lower().strip()

    @property
    def allowed_image_types_set(self) -> set[str]:
        """Get allowed image MIME types as a set."""
        return {t.strip() for t in self.allowed_image_types.split(",") if t.strip()}

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, v: str) -> str:
        """Ensure session secret is reasonably secure."""
        if len(v) < 16:
            raise ValueError("session_secret must be at least 16 characters")
        if v in ("changeme", "secret", "password", "admin"):
            raise ValueError("session_secret is too weak, please change it")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
