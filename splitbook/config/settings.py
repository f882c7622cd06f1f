"""
Splitbook Settings

Environment-driven configuration built on pydantic-settings.

DESIGN DECISION: Every knob the settlement core reads lives in this
module. Storage credentials are only loaded when the Sheets backend is
actually selected, so the in-memory setup needs no environment at all.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Where the Sheets backend keeps its data."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account key file used to open the spreadsheet"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet holding one worksheet per collection"
    )

    # Collections map to worksheets of the same name; activity has its own
    activity_sheet_name: str = Field(
        default="ActivityLog",
        description="Worksheet the activity log is appended to"
    )

    @field_validator('credentials_path')
    @classmethod
    def warn_if_missing(cls, v: str) -> str:
        """A missing key file is a warning only; it may be mounted later."""
        if not Path(v).exists():
            import warnings
            warnings.warn(f"No service account key at {v}; Sheets storage will fail to connect.")
        return v


class LedgerSettings(BaseSettings):
    """
    Behaviour of the settlement core.

    Read from SPLITBOOK_* variables, then .env.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPLITBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Deployment name, attached to startup logs"
    )

    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Which document store to use"
    )

    # Expense deletion leaves split ledgers in place unless this is set
    cascade_delete_splits: bool = Field(
        default=False,
        description="Delete an expense's split ledgers together with the expense"
    )

    transaction_max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="How often a conflicting transaction is retried"
    )
    activity_log_enabled: bool = Field(
        default=True,
        description="Persist activity events (local logging always happens)"
    )


class Settings(BaseSettings):
    """
    Entry point for all settings sections.

    Sections are built on access, so one badly configured backend does
    not stop the others from loading.
    """

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


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings. get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to load each settings section.

    Returns {section: loaded}, plus "<section>_error" messages for the
    sections that failed. Sheets settings are only checked when that
    backend is selected.
    """
    results = {}

    settings = get_settings()

    try:
        ledger = settings.ledger
        results["ledger"] = True
    except Exception as e:
        ledger = None
        results["ledger"] = False
        results["ledger_error"] = str(e)

    if ledger is not None and ledger.storage_backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
