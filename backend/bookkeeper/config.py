from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/bookkeeper.db"
    sql_echo: bool = False

    # Auth
    secret_key: str = "dev-secret-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    # Rate limiting (destructive operations)
    delete_rate_limit_max_requests: int = 5
    delete_rate_limit_window_seconds: int = 60

    # Accounting periods
    period_max_years: int = 2
    default_page_size: int = 20
    max_page_size: int = 100

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url
