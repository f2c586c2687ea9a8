import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        default_overall: Decimal,
        default_user_id: int,
        log_level: str,
        plaid_client_id: Optional[str],
        plaid_secret: Optional[str],
        plaid_env: str,
    ) -> None:
        self.database_url = database_url
        self.default_overall = default_overall
        self.default_user_id = default_user_id
        self.log_level = log_level
        self.plaid_client_id = plaid_client_id
        self.plaid_secret = plaid_secret
        self.plaid_env = plaid_env

    @property
    def plaid_configured(self) -> bool:
        return bool(self.plaid_client_id and self.plaid_secret)


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    default_overall = Decimal(os.getenv("BUDGET_DEFAULT_OVERALL", "3000"))
    default_user_id = int(os.getenv("BUDGET_DEFAULT_USER_ID", "1"))
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        default_overall=default_overall,
        default_user_id=default_user_id,
        log_level=log_level,
        plaid_client_id=os.getenv("PLAID_CLIENT_ID") or None,
        plaid_secret=os.getenv("PLAID_SECRET") or None,
        plaid_env=os.getenv("PLAID_ENV", "sandbox"),
    )
