from typing import List

from pydantic import SecretStr
from pydantic_settings import BaseSettings

from imagery_task_client.models import TaskClientConfig


# pydantic_settings reads the environment (and .env) and casts the values
class ProxySettings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }
    LOG_LEVEL: str = "INFO"
    EOSDA_API_KEY: SecretStr = SecretStr("")
    EOSDA_BASE_URL: str = "https://api-connect.eos.com"
    TASK_MAX_ATTEMPTS: int = 30
    TASK_POLL_INTERVAL: float = 10.0  # seconds
    TASK_REQUEST_TIMEOUT: float = 60.0  # seconds
    # Fail on 401/403/404 while polling instead of retrying them until timeout
    TASK_FAIL_FAST_CLIENT_ERRORS: bool = False
    PROXY_HOST: str = "0.0.0.0"
    PROXY_PORT: int = 3001
    PROXY_CORS_ORIGINS: List[str] = ["*"]

    @property
    def base_url(self) -> str:
        return self.EOSDA_BASE_URL.rstrip("/")

    def api_headers(self) -> dict:
        """Headers for api-connect endpoints that authenticate with x-api-key"""
        return {
            "x-api-key": self.EOSDA_API_KEY.get_secret_value(),
            "Content-Type": "application/json",
        }

    def to_client_config(self) -> TaskClientConfig:
        return TaskClientConfig(
            creation_endpoint=f"{self.base_url}/api/gdw/api",
            status_endpoint_template=f"{self.base_url}/api/gdw/api/{{task_id}}",
            headers=self.api_headers(),
            max_attempts=self.TASK_MAX_ATTEMPTS,
            poll_interval=self.TASK_POLL_INTERVAL,
            request_timeout=self.TASK_REQUEST_TIMEOUT,
            fail_fast_client_errors=self.TASK_FAIL_FAST_CLIENT_ERRORS,
        )
