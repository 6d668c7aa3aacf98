"""
RoomLedger Settings

Every knob comes from environment variables (or a .env file) through
pydantic-settings, grouped by prefix: LEDGER_ for money handling,
GOOGLE_SHEETS_ for the spreadsheet backend, none for the app itself.

DESIGN DECISION: Sections load lazily. A memory-backed setup runs without
any Google credentials in the environment.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


STORAGE_BACKENDS = ("memory", "google_sheets")


class LedgerSettings(BaseSettings):
    """Money handling and listing defaults."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    currency_epsilon: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Balances within this distance of zero count as settled"
    )
    currency_code: str = Field(
        default="EGP",
        min_length=3,
        max_length=3,
        description="ISO currency code shown next to amounts"
    )
    stats_months: int = Field(
        default=6,
        ge=1,
        le=24,
        description="Months covered by monthly breakdowns"
    )

    # Expense listing
    default_page_size: int = Field(
        default=20,
        ge=1,
        description="Expenses per page when no limit is given"
    )
    max_page_size: int = Field(
        default=100,
        ge=1,
        description="Upper bound for a requested page size"
    )


class GoogleSheetsSettings(BaseSettings):
    """Where the spreadsheet is and what its worksheets are called."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account key file"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Key of the spreadsheet holding the ledger"
    )

    # Worksheet titles
    groups_sheet_name: str = Field(default="Groups")
    expenses_sheet_name: str = Field(default="Expenses")
    splits_sheet_name: str = Field(default="ExpenseSplits")
    payments_sheet_name: str = Field(default="Payments")
    notifications_sheet_name: str = Field(default="Notifications")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Append-only audit trail"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing key file only warns; it may be mounted after startup."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Sheets storage will fail to connect until it is there."
            )
        return v


class AppSettings(BaseSettings):
    """Process-wide switches, including which storage backend to wire."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    storage_backend: str = Field(
        default="memory",
        description="Where the ledger lives: 'memory' or 'google_sheets'"
    )

    @field_validator('storage_backend')
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        backend = v.strip().lower()
        if backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}, got {v!r}"
            )
        return backend


class Settings(BaseSettings):
    """Entry point to every settings section."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide Settings. Tests call get_settings.cache_clear() after changing the env."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Startup check of every section the configured backend needs.

    Maps each section name to whether it loaded, plus a "<name>_error"
    entry with the message for each one that did not.
    Google Sheets settings are only checked when that backend is selected.
    """
    results = {}

    settings = get_settings()

    sections = {"ledger": lambda: settings.ledger, "app": lambda: settings.app}
    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    if results.get("app") and settings.app.storage_backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
