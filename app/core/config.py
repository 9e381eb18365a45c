"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


MPESA_BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Comma-separated origins. Empty = default list in app.main.
    cors_origins: str = ""
    # Trusted proxy IPs (comma-separated). Used for X-Forwarded-For in production.
    trusted_proxy_ips: str = ""
    # Public https base of this service; used for the M-Pesa callback and Telegram webhook URLs.
    public_base_url: str = ""

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default
    # Create tables on startup (local runs only; production uses migrations)
    db_auto_create: bool = False

    # ===========================================
    # REDIS
    # ===========================================
    redis_url: str  # Required, no default

    # ===========================================
    # M-PESA (Daraja STK push)
    # ===========================================
    mpesa_environment: str = "sandbox"  # sandbox, production
    mpesa_consumer_key: str = ""
    mpesa_consumer_secret: str = ""
    mpesa_shortcode: str = "174379"  # sandbox paybill
    mpesa_passkey: str = ""
    # Empty = {public_base_url}/payments/mpesa/callback
    mpesa_callback_url: str = ""
    # Shared secret appended to the callback URL as ?token=...; empty = not checked
    mpesa_callback_token: str = ""
    mpesa_max_amount: int = 150_000
    mpesa_timeout: float = 30.0

    # STK push rate limits (fixed window, shared through Redis)
    stk_rate_limit_per_phone: int = 3
    stk_rate_limit_global: int = 100
    stk_rate_limit_window_seconds: int = 60

    # ===========================================
    # ORDERS & FULFILLMENT
    # ===========================================
    # Create the purchase and bump sold_count when the callback reports success.
    # False = only manual admin approval fulfills orders.
    fulfill_on_callback: bool = True
    purchase_program_days: int = 30
    low_stock_threshold: int = 5

    # ===========================================
    # TELEGRAM BOT (support bridge)
    # ===========================================
    telegram_bot_token: str  # Required, no default
    # Operator chat receiving ticket notifications; replies there are threaded back
    telegram_admin_chat_id: str = ""
    # Sent by Telegram as X-Telegram-Bot-Api-Secret-Token; empty = not checked
    telegram_webhook_secret: str = ""

    # ===========================================
    # AUTH (JWT)
    # ===========================================
    jwt_secret_key: str  # Required, no default
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # Login rate limit (brute-force protection)
    login_rate_limit_attempts: int = 5
    login_rate_limit_window_seconds: int = 900  # 15 min

    # ===========================================
    # HTTP CLIENTS
    # ===========================================
    http_client_timeout: float = 10.0

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("mpesa_environment")
    @classmethod
    def validate_mpesa_environment(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in MPESA_BASE_URLS:
            raise ValueError(f"mpesa_environment must be one of {sorted(MPESA_BASE_URLS)}")
        return v

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Ensure the signing secret is reasonably secure."""
        if len(v) < 16:
            raise ValueError("jwt_secret_key must be at least 16 characters")
        if v in ("changeme", "secret", "password", "admin"):
            raise ValueError("jwt_secret_key is too weak, please change it")
        return v

    @property
    def mpesa_base_url(self) -> str:
        return MPESA_BASE_URLS[self.mpesa_environment]

    @property
    def mpesa_callback_endpoint(self) -> str:
        """Callback URL sent with every STK push (token appended when configured)."""
        url = self.mpesa_callback_url or f"{self.public_base_url.rstrip('/')}/payments/mpesa/callback"
        if self.mpesa_callback_token:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}token={self.mpesa_callback_token}"
        return url

    @property
    def telegram_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_admin_chat_id)

    @property
    def trusted_proxy_ips_set(self) -> set[str]:
        """Get trusted proxy IPs as a set."""
        return {ip.strip() for ip in self.trusted_proxy_ips.split(",") if ip.strip()}

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
