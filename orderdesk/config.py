"""Application configuration"""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""
    
    # Application
    APP_NAME: str = "OrderDesk"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    
    # API
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    
    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./orderdesk.db")
    
    # Duplicate-contact detection
    DEFAULT_COUNTRY_CODE: str = os.getenv("DEFAULT_COUNTRY_CODE", "212")
    MIN_PHONE_DIGITS: int = int(os.getenv("MIN_PHONE_DIGITS", "8"))
    DUPLICATES_INCLUDE_TRASHED: bool = os.getenv("DUPLICATES_INCLUDE_TRASHED", "True").lower() == "true"
    
    # Call logs
    CALL_LOG_LIMIT: int = int(os.getenv("CALL_LOG_LIMIT", "20"))
    
    # Reconciliation (1 = strictly sequential granular calls)
    RECONCILE_CONCURRENCY: int = int(os.getenv("RECONCILE_CONCURRENCY", "1"))
    
    # Orders
    ORDER_DISPLAY_ID_START: int = int(os.getenv("ORDER_DISPLAY_ID_START", "1001"))
    
    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE")
    
    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Global settings instance
settings = Settings()
