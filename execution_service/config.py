from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    EXECUTION_LOG_MAX_ENTRIES: int = Field(5000)
    # JSON-lines mirror of the execution log; empty keeps it in memory only
    EXECUTION_LOG_FILE: str = Field("")
    CONTAMINATION_WARN_THRESHOLD: float = Field(70)
    CONTAMINATION_BLOCK_THRESHOLD: float = Field(85)
    OPERATIONS_ROLE: str = Field("operations-lead")
    # Admin API token guarding log clear; empty disables the check
    ADMIN_TOKEN: str = Field("")
    LOG_LEVEL: str = Field("INFO")
    LOG_DIR: str = Field("logs")
    PORT: int = Field(8001)

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
