from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Defaults for widgets whose options omit apiUrl / tenantId
    API_URL: str = ""
    TENANT_ID: str = ""

    REDIS_URL: str | None = None
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None

    STORAGE_KEY: str = "cc_chat_session"
    SESSION_EXPIRY_SECONDS: int = 30 * 60  # 30 minutes

    HEARTBEAT_INTERVAL_SECONDS: float = 30.0
    RECONNECT_DELAY_SECONDS: float = 3.0
    RECONNECT_MAX_DELAY_SECONDS: float = 30.0
    RECONNECT_JITTER: float = 0.2

    REQUEST_TIMEOUT_SECONDS: float = 15.0
    END_CLOSE_DELAY_SECONDS: float = 2.0

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

