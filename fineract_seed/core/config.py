"""Application configuration loaded from environment variables."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Fineract API
    fineract_url: str = "https://localhost:8443/fineract-provider/api/v1"
    fineract_tenant: str = "default"
    fineract_locale: str = "en"
    fineract_date_format: str = "dd MMMM yyyy"
    fineract_verify_ssl: bool = True
    connect_timeout_ms: int = 30000
    read_timeout_ms: int = 60000

    # Authentication ("oauth" or "basic")
    auth_type: str = "oauth"
    basic_username: str = "mifos"
    basic_password: str = "password"
    oauth_token_url: str = ""
    oauth_grant_type: str = "password"
    oauth_client_id: str = ""
    oauth_client_secret: str = ""
    oauth_username: str = ""
    oauth_password: str = ""

    # Retry
    retry_max_attempts: int = 3
    retry_initial_interval_ms: int = 1000
    retry_multiplier: float = 2.0
    retry_max_interval_ms: int = 10000

    # Template discovery (relative to project root)
    data_dir: str = "data"
    workbook_subdir: str = "workbook-templates"
    manifest_file: str = "manifest.yaml"

    client_page_size: int = 200
    log_level: str = "INFO"

    # Backend
    backend_host: str = "0.0.0.0"
    backend_port: int = 9300

    @field_validator("auth_type")
    @classmethod
    def _check_auth_type(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("oauth", "basic"):
            raise ValueError("auth_type must be either 'oauth' or 'basic'")
        return value

    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent.parent

    @property
    def data_path(self) -> Path:
        path = Path(self.data_dir)
        if not path.is_absolute():
            path = self.project_root / path
        return path

    model_config = {"env_file": ".env", "env_prefix": "", "extra": "ignore"}


settings = Settings()
