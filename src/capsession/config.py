from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from capsession.types import Scope

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    lobby_base_url: str = "http://localhost:3001"
    app_return_url: str = "http://localhost:3000/"

    scope_resource: str = (
        "did:key:z6MkfRiFMLzCxxnw6VMrHK8pPFt4QAHS3jX3XM87y9rta6kP|did:example:microblog"
    )
    scope_action: str = "adx/WRITE"

    storage_backend: str = "file"
    storage_path: str = str(Path.home() / ".capsession" / "store.json")
    storage_key_prefix: str = "capsession:"
    identity_storage_key: str = "adxKey"
    tokens_storage_key: str = "adxUcans"

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0

    jwt_leeway_seconds: int = 5
    delegation_default_ttl_minutes: int = 30

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CAPSESSION_",
        env_file=(str(BASE_DIR / ".env"), ".env"),
        env_file_encoding="utf-8",
    )

    @property
    def scope(self) -> Scope:
        return Scope(resource=self.scope_resource, action=self.scope_action)

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


settings = Settings()
