"""Key/value rows for state that must outlive the process.

Used for the "Script Extender was deployed" flag and the last written
load-order fingerprint.
"""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class AppSetting(SQLModel, table=True):
    __tablename__ = "app_settings"

    id: int | None = Field(default=None, primary_key=True)
    key: str = Field(unique=True, index=True)
    value: str = ""
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
