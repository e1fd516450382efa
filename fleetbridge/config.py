import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigError

DEFAULT_BASE_V1 = "https://secure.fleetio.com/api/v1"
DEFAULT_BASE_V2 = "https://secure.fleetio.com/api/v2"
DEFAULT_WEB_BASE = "https://secure.fleetio.com"
DEFAULT_UPLOAD_ENDPOINT = "https://lmuavc3zg4.execute-api.us-east-1.amazonaws.com/prod/uploads"
DEFAULT_DB_PATH = "data/fleetbridge.db"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name, default)
    if isinstance(value, str):
        value = value.strip()
        return value or default
    return value


def _env_number(name: str, default, cast):
    raw = _env(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def db_path_from_env() -> Path:
    """Inspection link database; needs no Fleetio credentials."""
    return Path(_env("FLEETBRIDGE_DB", DEFAULT_DB_PATH))


@dataclass(frozen=True)
class FleetioConfig:
    """Credentials and endpoints for one Fleetio account.

    Built once and handed to the client and saga; nothing reads
    credentials from module globals.
    """

    api_token: str
    account_token: str
    base_v1: str = DEFAULT_BASE_V1
    base_v2: str = DEFAULT_BASE_V2
    web_base: str = DEFAULT_WEB_BASE
    upload_endpoint: str = DEFAULT_UPLOAD_ENDPOINT
    timeout: float = 20.0
    page_size: int = 100
    max_pages: int = 50
    print_url: Optional[str] = None
    db_path: Path = Path(DEFAULT_DB_PATH)

    def __post_init__(self):
        if not self.api_token:
            raise ConfigError("Missing Fleetio API token (FLEETIO_API_TOKEN)")
        if not self.account_token:
            raise ConfigError("Missing Fleetio account token (FLEETIO_ACCOUNT_TOKEN)")
        if self.max_pages < 1:
            raise ConfigError("max_pages must be at least 1")
        if self.page_size < 1:
            raise ConfigError("page_size must be at least 1")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")

    @classmethod
    def from_env(cls) -> "FleetioConfig":
        """Build a config from FLEETIO_* / FLEETBRIDGE_* environment variables."""
        return cls(
            api_token=_env("FLEETIO_API_TOKEN") or "",
            account_token=_env("FLEETIO_ACCOUNT_TOKEN") or "",
            base_v1=(_env("FLEETIO_BASE_V1", DEFAULT_BASE_V1) or "").rstrip("/"),
            base_v2=(_env("FLEETIO_BASE_V2", DEFAULT_BASE_V2) or "").rstrip("/"),
            web_base=(_env("FLEETIO_WEB_BASE", DEFAULT_WEB_BASE) or "").rstrip("/"),
            upload_endpoint=_env("FLEETIO_UPLOAD_ENDPOINT", DEFAULT_UPLOAD_ENDPOINT),
            timeout=_env_number("FLEETIO_TIMEOUT", 20.0, float),
            page_size=_env_number("FLEETIO_PAGE_SIZE", 100, int),
            max_pages=_env_number("FLEETIO_MAX_PAGES", 50, int),
            print_url=_env("FLEETBRIDGE_PRINT_URL"),
            db_path=db_path_from_env(),
        )

    def work_order_url(self, work_order_id, work_order_number: Optional[str] = None) -> str:
        ref = work_order_number or work_order_id
        return f"{self.web_base}/{self.account_token}/work_orders/{ref}/edit"
