from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    MONGO_URI: str = Field("mongodb://localhost:27017")
    MONGO_DB: str = Field("livepoll")

    # WebAuthn relying party
    RP_ID: str = Field("localhost")
    RP_NAME: str = Field("LivePoll")
    ORIGIN: str = Field("http://localhost:3000")
    CHALLENGE_TTL_SECONDS: int = Field(300)
    WEBAUTHN_TIMEOUT_MS: int = Field(60000)
    USER_VERIFICATION: str = Field("preferred")

    SESSION_COOKIE_NAME: str = Field("session_token")
    SESSION_TTL_SECONDS: int = Field(86400)
    # unset: Secure only when ENV is production
    COOKIE_SECURE: Optional[bool] = Field(None)
    COOKIE_SAMESITE: str = Field("lax")

    CORS_ORIGINS: str = Field("http://localhost:3000")

    KEEPALIVE_SECONDS: float = Field(15)
    SUBSCRIBER_QUEUE_SIZE: int = Field(64)

    QUESTION_MAX_LENGTH: int = Field(200)
    OPTION_MAX_LENGTH: int = Field(100)
    MIN_OPTIONS: int = Field(2)
    MAX_OPTIONS: int = Field(10)

    LOG_LEVEL: str = Field("INFO")

    APP_HOST: str = Field("0.0.0.0")
    APP_PORT: int = Field(8000)
    ENV: str = Field("development")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def origins(self) -> List[str]:
        return [o.strip() for o in self.ORIGIN.split(",") if o.strip()]

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def cookie_secure(self) -> bool:
        if self.COOKIE_SECURE is None:
            return self.ENV == "production"
        return self.COOKIE_SECURE


settings = Settings()
