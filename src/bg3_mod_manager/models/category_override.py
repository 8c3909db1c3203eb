"""User-chosen load-order tiers, keyed by mod id.

Rows live independently of discovered records, so an override survives the
archive being rescanned, renamed, or temporarily removed.
"""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class CategoryOverride(SQLModel, table=True):
    __tablename__ = "category_overrides"

    id: int | None = Field(default=None, primary_key=True)
    mod_id: str = Field(unique=True, index=True)
    tier: int = Field(ge=1, le=5)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
