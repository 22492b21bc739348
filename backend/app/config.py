from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    app_name: str = "CaseDocket"
    app_version: str = "1.0.0"
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite+aiosqlite:///./casedocket.db"
    auto_create_tables: bool = True

    # Auth
    secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 7 * 24 * 60
    session_sweep_interval_seconds: int = 3600

    # Uploads
    upload_dir: str = "uploads"
    max_upload_size: int = 10 * 1024 * 1024

    # Rate limiting
    rate_limit_window_seconds: int = 900
    rate_limit_max_requests: int = 100
    rate_limit_enabled: bool = True

    # Redis (Celery broker, rate limit counters)
    redis_url: str = "redis://redis:6379/0"

    # Admin bootstrap
    first_admin_email: str = "admin@example.com"
    first_admin_password: str = "CHANGE_ME"

    # CORS
    backend_cors_origins: list[str] = ["http://localhost", "http://localhost:5173"]

    model_config = {"env_file": ".env", "case_sensitive": False}


settings = Settings()
