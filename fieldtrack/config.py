from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'FieldTrack'
    app_env: str = 'local'
    app_timezone: str = 'Europe/Warsaw'
    database_url: str = 'sqlite:///./fieldtrack.db'
    storage_backend: str = 'sql'
    storage_key_prefix: str = 'ft-'
    auth_password_min_length: int = 4
    auth_secret: str = 'change-me'
    db_slow_query_ms: int = 100
    request_slow_ms: int = 200


settings = Settings()
