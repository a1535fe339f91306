import json

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./courier.db"

    REDIS_URL: str = "redis://redis:6379/0"

    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    FRONTEND_URL: str = "http://localhost:3000"

    BACKEND_CORS_ORIGINS: str = '["http://localhost:3000","http://localhost:5173"]'

    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Courier Messaging API"
    DEBUG: bool = False

    # Realtime fan-out between workers (Redis pub/sub)
    REALTIME_ENABLED: bool = True
    REALTIME_CHANNEL: str = "courier:events"

    # Do-not-disturb windows are evaluated in this zone
    DND_TIMEZONE: str = "UTC"

    # Deep link target for message notifications
    FRONTEND_MESSAGES_PATH: str = "/dashboard/messages"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def cors_origins(self) -> list[str]:
        if isinstance(self.BACKEND_CORS_ORIGINS, str):
            try:
                parsed: list[str] = json.loads(self.BACKEND_CORS_ORIGINS)
                return parsed
            except json.JSONDecodeError:
                return ["http://localhost:3000"]
        return self.BACKEND_CORS_ORIGINS


settings = Settings()
