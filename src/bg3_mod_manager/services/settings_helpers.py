"""Read and write ``AppSetting`` rows. Writers leave the commit to the caller."""

from datetime import UTC, datetime

from sqlmodel import Session, select

from bg3_mod_manager.models.settings import AppSetting


def _row(session: Session, key: str) -> AppSetting | None:
    return session.exec(select(AppSetting).where(AppSetting.key == key)).first()


def get_setting(session: Session, key: str) -> str | None:
    """Stored value for *key*; empty values read as None."""
    row = _row(session, key)
    return row.value if row and row.value else None


def set_setting(session: Session, key: str, value: str) -> None:
    row = _row(session, key)
    if row is None:
        row = AppSetting(key=key, value=value)
    else:
        row.value = value
        row.updated_at = datetime.now(UTC)
    session.add(row)


def get_flag(session: Session, key: str) -> bool:
    return get_setting(session, key) == "1"


def set_flag(session: Session, key: str, value: bool) -> None:
    set_setting(session, key, "1" if value else "0")
