import os
from typing import List

from pydantic_settings import BaseSettings


class Config(BaseSettings):
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost:5432")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "<PASSWORD>")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "postgres")

    # Customer sessions
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "secret")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_AUDIENCE: str = os.getenv("JWT_AUDIENCE", "authenticated")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 60))

    # Server-to-server calls
    SERVICE_ROLE_KEY: str = os.getenv("SERVICE_ROLE_KEY", "")

    # Game panel
    PTERODACTYL_URL: str = os.getenv("PTERODACTYL_URL", "")
    PTERODACTYL_API_KEY: str = os.getenv("PTERODACTYL_API_KEY", "")
    PTERODACTYL_CLIENT_API_KEY: str = os.getenv("PTERODACTYL_CLIENT_API_KEY", "")
    PTERODACTYL_WEBHOOK_SECRET: str = os.getenv("PTERODACTYL_WEBHOOK_SECRET", "")
    PANEL_TIMEOUT_SECONDS: float = float(os.getenv("PANEL_TIMEOUT_SECONDS", 30))

    # Billing
    STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_API_VERSION: str = os.getenv("STRIPE_API_VERSION", "2025-08-27.basil")
    CHECKOUT_DEFAULT_ORIGIN: str = os.getenv("CHECKOUT_DEFAULT_ORIGIN", "http://localhost:5173")
    # An event received but never processed is retried by redelivery after this long
    WEBHOOK_EVENT_RETRY_SECONDS: int = int(os.getenv("WEBHOOK_EVENT_RETRY_SECONDS", 600))

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        extra = "ignore"

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}/{self.POSTGRES_DB}"

    @property
    def PANEL_BASE_URL(self) -> str:
        return normalize_base_url(self.PTERODACTYL_URL)

    def configuration_problems(self) -> List[str]:
        """Names every setting the provisioning flow cannot run without."""
        problems = []
        if not self.PTERODACTYL_URL:
            problems.append("PTERODACTYL_URL is not set")
        if not self.PTERODACTYL_API_KEY:
            problems.append("PTERODACTYL_API_KEY is not set")
        if not self.PTERODACTYL_CLIENT_API_KEY:
            problems.append("PTERODACTYL_CLIENT_API_KEY is not set")
        if not self.STRIPE_SECRET_KEY:
            problems.append("STRIPE_SECRET_KEY is not set")
        if not self.STRIPE_WEBHOOK_SECRET:
            problems.append("STRIPE_WEBHOOK_SECRET is not set, billing events are accepted unverified")
        if not self.SERVICE_ROLE_KEY:
            problems.append("SERVICE_ROLE_KEY is not set, internal endpoints are closed")
        return problems


def normalize_base_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    if not url.startswith("http://") and not url.startswith("https://"):
        url = f"https://{url}"
    return url.rstrip("/")


config = Config()
