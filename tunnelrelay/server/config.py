import os
from typing import Optional

DEFAULT_AUTH_TOKEN = "tunnelrelay_token"


class Config:
    """Server configuration from environment variables"""

    # Registration
    PROXY_AUTH_TOKEN: str = os.getenv("PROXY_AUTH_TOKEN", DEFAULT_AUTH_TOKEN)

    # Webhook verification handshake
    WEBHOOK_PATH: str = os.getenv("WEBHOOK_PATH", "/api/social/webhook")
    WEBHOOK_VERIFY_TOKEN: str = os.getenv("WEBHOOK_VERIFY_TOKEN", DEFAULT_AUTH_TOKEN)

    # Persistent store
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_PASSWORD: Optional[str] = os.getenv("REDIS_PASSWORD")
    KEY_PREFIX: str = os.getenv("TUNNELRELAY_KEY_PREFIX", "tunnelrelay")

    # Audit log
    AUDIT_MAX_BODY: int = int(os.getenv("TUNNELRELAY_AUDIT_MAX_BODY", str(64 * 1024)))

    # Fixed policy
    REGISTRATION_TTL_SECONDS: int = 3600
    RELAY_TIMEOUT_SECONDS: float = 30.0
    AUDIT_LOG_CAPACITY: int = 50

    REGISTER_PATH: str = "/_proxy/register"

    @classmethod
    def validate(cls):
        """Validate configuration"""
        import logging
        logger = logging.getLogger("tunnelrelay-server")

        if cls.PROXY_AUTH_TOKEN == DEFAULT_AUTH_TOKEN:
            logger.warning("     PROXY_AUTH_TOKEN not set - using insecure default. Set PROXY_AUTH_TOKEN environment variable!")

        if not cls.WEBHOOK_PATH.startswith("/"):
            raise ValueError(f"WEBHOOK_PATH must start with '/', got {cls.WEBHOOK_PATH!r}")

    @classmethod
    def key(cls, name: str) -> str:
        """Namespaced store key"""
        return f"{cls.KEY_PREFIX}:{name}"

    @classmethod
    def get_callback_url(cls, host: str, use_https: bool = True) -> str:
        """Public webhook callback URL for the given host"""
        protocol = "https" if use_https else "http"
        return f"{protocol}://{host}{cls.WEBHOOK_PATH}"
