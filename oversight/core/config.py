from typing import List, Union
from pathlib import Path
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Oversight Console API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./oversight.db"
    SQL_ECHO: bool = False

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # Triage
    IDLE_THRESHOLD_MINUTES: int = 30
    AUDIT_QUERY_LIMIT: int = 1000

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Use .env file if it exists, otherwise rely on environment variables
    _env_file = Path(__file__).resolve().parent.parent.parent / ".env"
    model_config = SettingsConfigDict(
        env_file=_env_file if _env_file.exists() else None,
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
