from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    api_base_url: str = "https://otawebsocket.onrender.com"
    http_timeout_seconds: float = 30.0
    action_timeout_seconds: float = 15.0  # Client-side guard for mutating calls
    session_secret: str = "dev-session-secret"
    admin_role: str = "admin"
    log_level: str = "INFO"
    toast_duration_ms: int = 4000
    error_toast_duration_ms: int = 6000

    class Config:
        env_file = ".env"
        env_prefix = "OTACONSOLE_"


settings = Settings()
