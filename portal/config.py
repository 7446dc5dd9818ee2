from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Academy Portal'
    app_env: str = 'local'
    app_timezone: str = 'Asia/Seoul'
    database_url: str = 'sqlite:///./portal.db'
    auth_secret: str = 'change-me'
    auth_session_expiry_hours: int = 12
    api_base_url: str = 'http://127.0.0.1:8000'
    api_timeout_seconds: float = 10.0
    db_slow_query_ms: int = 100
    request_slow_ms: int = 200


settings = Settings()
