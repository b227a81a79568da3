from pydantic_settings import BaseSettings
from typing import Optional
from urllib.parse import quote_plus

class Settings(BaseSettings):
    env: str = "production"
    log_level: str = "INFO"

    postgres_user: Optional[str] = None
    postgres_password: str = ""
    postgres_db: str = "chapterone"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"
    sqlite_url: str = "sqlite:///./chapterone.db"

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    base_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:8080"
    cors_origins: str = "http://localhost:8080,http://localhost:5173"

    # Nomba checkout
    nomba_base_url: str = "https://api.nomba.com/v1"
    nomba_client_id: Optional[str] = None
    nomba_private_key: Optional[str] = None
    nomba_account_id: Optional[str] = None
    nomba_webhook_secret: Optional[str] = None
    nomba_webhook_verify: bool = True
    nomba_token_ttl_seconds: int = 25 * 60  # provider tokens live 30 minutes
    nomba_timeout_seconds: int = 15

    pending_purchase_timeout_minutes: int = 5
    verify_recheck_delay_seconds: float = 2.5

    @property
    def database_url(self):
        if not self.postgres_user:
            return self.sqlite_url
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def allowed_origins(self):
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()
