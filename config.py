import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        default_salary: float,
        payment_grace_days: int,
        installment_lookback_months: int,
        personal_excluded_categories: tuple[str, ...],
        sync_lookback_days: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.default_salary = default_salary
        self.payment_grace_days = payment_grace_days
        self.installment_lookback_months = installment_lookback_months
        self.personal_excluded_categories = personal_excluded_categories
        self.sync_lookback_days = sync_lookback_days


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "fintrack.db"
    database_url = os.getenv("FINTRACK_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINTRACK_TIMEZONE", "Asia/Jakarta")
    default_salary = float(os.getenv("FINTRACK_DEFAULT_SALARY", "30000000"))
    payment_grace_days = int(os.getenv("FINTRACK_PAYMENT_GRACE_DAYS", "3"))
    installment_lookback_months = int(
        os.getenv("FINTRACK_INSTALLMENT_LOOKBACK_MONTHS", "24")
    )
    personal_excluded_categories = _split_csv(
        os.getenv("FINTRACK_PERSONAL_EXCLUDED_CATEGORIES", "")
    )
    sync_lookback_days = int(os.getenv("FINTRACK_SYNC_LOOKBACK_DAYS", "30"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        default_salary=default_salary,
        payment_grace_days=payment_grace_days,
        installment_lookback_months=installment_lookback_months,
        personal_excluded_categories=personal_excluded_categories,
        sync_lookback_days=sync_lookback_days,
    )
