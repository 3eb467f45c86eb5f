"""
AZEBot Paywall Configuration Module

Loads environment variables for the payment confirmation backend.
"""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - Gateway credentials are environment-based, never hard-coded in production
    - Demo mode swaps the HTTPS gateway for the in-process mock gateway
    - Poll interval and budget drive the confirmation poller after redirect-back
    """

    # Demo Configuration
    demo_mode: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Payment Gateway
    gateway_base_url: str = "https://api.gateway.example.com/v1"
    gateway_api_key: str = "gateway_key_demo_only_change_me"
    gateway_timeout_seconds: float = 10.0
    currency: str = "XOF"  # FCFA

    # Redirect-back URLs (gateway sends the browser here after checkout)
    frontend_base_url: str = "http://localhost:5173"
    success_path: str = "/payment/success"
    cancel_path: str = "/payment/cancel"

    # Confirmation Poller
    poll_interval_seconds: float = 5.0
    poll_max_attempts: int = 12  # ~1 minute at the default interval

    # Reconciliation Sweeper (server-side, optional)
    sweeper_enabled: bool = False
    sweeper_interval_seconds: int = 60
    sweeper_grace_seconds: int = 120

    # Database
    database_path: str = "./azebot.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
