import os
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

from access_filter import AllowList
from candidate_upload import MAX_UPLOAD_BYTES

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables and env files.

    Attributes:
        app_env: Environment selector, picks the `.env.<app_env>` file
        allowed_ips: Comma-separated list of client addresses allowed to reach the API
        trust_proxy: Whether the service sits behind a proxy that sets x-forwarded-for
        max_upload_bytes: Upload size ceiling in bytes
        cors_origins: Comma-separated list of origins for the browser client
        log_level: Root logging level
        log_dir: Directory for the dated log files
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "development"
    allowed_ips: str = ""
    trust_proxy: bool = False
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    cors_origins: str = "*"
    log_level: str = "INFO"
    log_dir: str = os.path.join(BASE_DIR, "logs")

    def allow_list(self) -> AllowList:
        return AllowList.from_csv(self.allowed_ips)

    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """
    Load settings for the environment named by APP_ENV.

    `.env` is read first and `.env.<APP_ENV>` overrides it; variables already
    set in the process environment win over both.
    """
    app_env = os.getenv("APP_ENV", "development")
    return Settings(_env_file=(".env", f".env.{app_env}"))
