"""
Application settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Shared relational store for every stage of the workflow
    DATABASE_URL: str = "sqlite:///./data/paymentflow.db"
    SQL_ECHO: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # File storage
    DATA_DIR: str = "./data"

    # Receipt / reference number generation
    RECEIPT_NUMBER_MAX_ATTEMPTS: int = 10
    RECEIPT_NUMBER_BACKOFF_SECONDS: float = 0.005

    # List finders
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Raw record validation
    WORK_DATE_MAX_AGE_YEARS: int = 1

    # Create a PENDING employer receipt right after a worker receipt is generated
    AUTO_CREATE_EMPLOYER_RECEIPT: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
