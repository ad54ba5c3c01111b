"""Runtime configuration for opalstore."""

import os
from dataclasses import dataclass
from pathlib import Path

# Can be overridden via OPALSTORE_DATA_DIR environment variable.
# An explicitly empty value leaves the document store unconfigured.
_default_data_dir = Path(__file__).parent.parent.parent / "data"

DEFAULT_ORDER_PREFIX = "OPAL"
DEFAULT_MAX_QUANTITY = 99
DEFAULT_ADMIN_KEY = "demo-admin-key"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppConfig:
    """Settings read from OPALSTORE_* environment variables."""

    data_dir: Path | None
    order_prefix: str = DEFAULT_ORDER_PREFIX
    max_quantity: int = DEFAULT_MAX_QUANTITY
    admin_key: str = DEFAULT_ADMIN_KEY
    allow_status_corrections: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        raw_dir = os.environ.get("OPALSTORE_DATA_DIR")
        if raw_dir is None:
            data_dir: Path | None = _default_data_dir
        elif raw_dir.strip():
            data_dir = Path(raw_dir).expanduser()
        else:
            data_dir = None

        max_quantity = int(os.environ.get("OPALSTORE_MAX_QUANTITY", DEFAULT_MAX_QUANTITY))
        if max_quantity < 1:
            raise ValueError("OPALSTORE_MAX_QUANTITY must be at least 1")

        return cls(
            data_dir=data_dir,
            order_prefix=os.environ.get("OPALSTORE_ORDER_PREFIX", DEFAULT_ORDER_PREFIX).upper(),
            max_quantity=max_quantity,
            admin_key=os.environ.get("OPALSTORE_ADMIN_KEY", DEFAULT_ADMIN_KEY),
            allow_status_corrections=(
                os.environ.get("OPALSTORE_ALLOW_STATUS_CORRECTIONS", "").strip().lower()
                in _TRUE_VALUES
            ),
            log_level=os.environ.get("OPALSTORE_LOG_LEVEL", "INFO").upper(),
        )
