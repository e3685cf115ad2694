from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./project_console.db"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Remote object store connection
    REMOTE_LOGIN_URL: Optional[str] = None
    REMOTE_INSTANCE_URL: str = "https://login.salesforce.com"
    REMOTE_USERNAME: Optional[str] = None
    REMOTE_PASSWORD: Optional[str] = None
    REMOTE_SECURITY_TOKEN: str = ""
    REMOTE_CLIENT_ID: Optional[str] = None
    REMOTE_CLIENT_SECRET: Optional[str] = None
    # Pre-issued session token, skips the password login when set
    REMOTE_ACCESS_TOKEN: Optional[str] = None
    REMOTE_API_VERSION: str = "v59.0"
    HTTP_TIMEOUT_SECONDS: float = 60.0

    # Internal deadlines, checked between remote calls
    AGGREGATE_TIMEOUT_SECONDS: float = 240.0
    DRILLDOWN_TIMEOUT_SECONDS: float = 540.0
    # Inbound request timeouts; must outlast the matching deadline so the
    # pipeline returns flagged data before the request is cancelled
    REQUEST_TIMEOUT_SECONDS: float = 300.0
    DRILLDOWN_REQUEST_TIMEOUT_SECONDS: float = 600.0

    # Batched fetching
    FETCH_CONCURRENCY: int = 4
    DEFAULT_BATCH_SIZE: int = 200
    COUNT_BATCH_SIZE: int = 100
    MAX_PAGES_PER_BATCH: int = 10

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def check_timeouts(self) -> "Settings":
        if self.REQUEST_TIMEOUT_SECONDS <= self.AGGREGATE_TIMEOUT_SECONDS:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be greater than AGGREGATE_TIMEOUT_SECONDS")
        if self.DRILLDOWN_REQUEST_TIMEOUT_SECONDS <= self.DRILLDOWN_TIMEOUT_SECONDS:
            raise ValueError(
                "DRILLDOWN_REQUEST_TIMEOUT_SECONDS must be greater than DRILLDOWN_TIMEOUT_SECONDS"
            )
        return self


# Create a single instance of the settings to use everywhere
settings = Settings()
