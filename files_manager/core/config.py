from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Files Manager"
    DATABASE_URL: str = "sqlite:///./files_manager.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    FOLDER_PATH: str = "/tmp/files_manager"
    SESSION_TTL_SECONDS: int = 86400
    PAGE_SIZE: int = 20

    QUEUE_BACKEND: str = "redis"  # "redis" or "local"
    QUEUE_DIR: str = "/tmp/files_manager_queue"
    QUEUE_PREFIX: str = "files_manager"
    JOB_ATTEMPTS: int = 3
    JOB_BACKOFF_SECONDS: float = 2.0
    # Claimed jobs not finished within this window are redelivered
    JOB_VISIBILITY_TIMEOUT: float = 300.0

    THUMBNAIL_JOB_TIMEOUT: float = 60.0
    WORKER_CONCURRENCY: int = 2

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
