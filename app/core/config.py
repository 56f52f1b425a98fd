from decimal import Decimal
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import validator

class Settings(BaseSettings):
    PROJECT_NAME: str = "GuideMe API"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = "Order management for dental surgical guide fabrication"
    API_V1_STR: str = "/api/v1"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:5173",  # Vite dev server
        "http://localhost:8000",  # Backend development
    ]

    # Database
    DATABASE_URL: str

    # Database connection pool settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 minutes
    DB_COMMAND_TIMEOUT: int = 60  # 60 seconds
    SQL_ECHO: bool = False  # Set to True to log SQL queries (development only)

    # Security
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 3600

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Performance
    ENABLE_RESPONSE_COMPRESSION: bool = True

    # Business rules
    CURRENCY: str = "SAR"
    STUDY_FEE_AMOUNT: Decimal = Decimal("100")
    DEFAULT_VAT_RATE: Decimal = Decimal("15")
    QUOTE_VALIDITY_DAYS: int = 30

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def assemble_cors_origins(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
