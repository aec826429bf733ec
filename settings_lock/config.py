"""
Application configuration loaded from environment variables / .env file.
"""

from pydantic_settings import BaseSettings

# The device needs time to finish a settings change before it relocks.
MIN_RELOCK_TIMEOUT_MINUTES: int = 2


def effective_relock_minutes(value: int) -> int:
    """Return the configured relock timeout clamped to the minimum."""
    return max(int(value), MIN_RELOCK_TIMEOUT_MINUTES)


class Settings(BaseSettings):
    # Lock behaviour
    pin: str = "00000000"
    relock_timeout_minutes: int = 10

    # Device xAPI connection
    device_host: str = "192.168.1.50"
    device_username: str = "admin"
    device_password: str = ""
    device_verify_tls: bool = False
    device_timeout: float = 10.0

    # HttpFeedback registration (empty url skips it)
    feedback_url: str = ""
    feedback_slot: int = 1
    # Shared secret the device sends back as ?token= (empty accepts any caller)
    feedback_token: str = ""

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True}


settings = Settings()
