"""Runtime-editable library settings stored in the database.

Values are kept as strings alongside a declared data type and parsed on
the way out. Services read them through :func:`get_value`, which falls back
to the caller's default when a key has not been seeded.
"""
import json
import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from library_backend.models.enums import SettingCategory, SettingDataType
from library_backend.models.setting import Setting
from library_backend.services.errors import BadRequestError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = [
    ("library.name", "City Public Library", SettingCategory.LIBRARY, SettingDataType.STRING, "Library name"),
    ("library.email", "info@library.com", SettingCategory.LIBRARY, SettingDataType.STRING, "Library contact email"),
    ("loans.default_period_days", "14", SettingCategory.LOANS, SettingDataType.NUMBER, "Default loan period in days"),
    ("loans.max_renewals", "2", SettingCategory.LOANS, SettingDataType.NUMBER, "Maximum number of renewals allowed"),
    ("loans.max_books_per_user", "5", SettingCategory.LOANS, SettingDataType.NUMBER, "Maximum books a user can hold at once"),
    ("fines.per_day_amount", "5", SettingCategory.FINES, SettingDataType.NUMBER, "Fine amount per day"),
    ("fines.max_fine_amount", "500", SettingCategory.FINES, SettingDataType.NUMBER, "Maximum fine amount shown in reports"),
    ("deposits.default_amount", "0", SettingCategory.FINES, SettingDataType.NUMBER, "Default security deposit for new books"),
    ("system.currency", "USD", SettingCategory.SYSTEM, SettingDataType.STRING, "Currency code"),
    ("system.notifications_enabled", "true", SettingCategory.SYSTEM, SettingDataType.BOOLEAN, "Create in-app notifications"),
]


def parse_value(value: str, data_type: SettingDataType) -> Any:
    if data_type == SettingDataType.NUMBER:
        number = float(value)
        return int(number) if number.is_integer() else number
    if data_type == SettingDataType.BOOLEAN:
        return value.lower() == "true"
    if data_type == SettingDataType.JSON:
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def stringify_value(value: Any, data_type: SettingDataType) -> str:
    if data_type == SettingDataType.JSON:
        return json.dumps(value)
    if data_type == SettingDataType.BOOLEAN:
        return "true" if value else "false"
    return str(value)


def validate_value(value: Any, data_type: SettingDataType) -> None:
    if data_type == SettingDataType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise BadRequestError("Value must be a valid number")
    elif data_type == SettingDataType.BOOLEAN:
        if not isinstance(value, bool):
            raise BadRequestError("Value must be a boolean")
    elif data_type == SettingDataType.JSON:
        if not isinstance(value, (dict, list)):
            raise BadRequestError("Value must be a valid JSON object")
    elif not isinstance(value, str):
        raise BadRequestError("Value must be a string")


def serialize(setting: Setting) -> dict:
    return {
        "key": setting.key,
        "value": parse_value(setting.value, setting.data_type),
        "category": setting.category.value,
        "dataType": setting.data_type.value,
        "description": setting.description,
        "isEditable": setting.is_editable,
        "defaultValue": parse_value(setting.default_value, setting.data_type),
    }


def seed_defaults(db: Session) -> int:
    """Insert any default settings that are missing. Returns the number created."""
    existing = {key for (key,) in db.query(Setting.key).all()}
    created = 0
    for key, value, category, data_type, description in DEFAULT_SETTINGS:
        if key in existing:
            continue
        db.add(Setting(
            key=key,
            value=value,
            default_value=value,
            category=category,
            data_type=data_type,
            description=description,
            is_editable=True,
        ))
        created += 1
    db.commit()
    if created:
        logger.info(f"Seeded {created} default settings")
    return created


def list_settings(db: Session, category: Optional[SettingCategory] = None) -> List[Setting]:
    query = db.query(Setting)
    if category:
        query = query.filter(Setting.category == category)
    return query.order_by(Setting.category, Setting.key).all()


def get_setting(db: Session, key: str) -> Setting:
    setting = db.query(Setting).filter(Setting.key == key).first()
    if not setting:
        raise NotFoundError(f"Setting with key '{key}' not found")
    return setting


def update_setting(db: Session, key: str, value: Any) -> Setting:
    setting = get_setting(db, key)
    if not setting.is_editable:
        raise BadRequestError(f"Setting '{key}' is not editable")
    validate_value(value, setting.data_type)
    setting.value = stringify_value(value, setting.data_type)
    db.commit()
    db.refresh(setting)
    logger.info(f"Setting {key} updated")
    return setting


def reset_setting(db: Session, key: str) -> Setting:
    setting = get_setting(db, key)
    if not setting.is_editable:
        raise BadRequestError(f"Setting '{key}' cannot be reset")
    setting.value = setting.default_value
    db.commit()
    db.refresh(setting)
    return setting


def get_value(db: Session, key: str, default: Any = None) -> Any:
    setting = db.query(Setting).filter(Setting.key == key).first()
    if setting is None:
        return default
    return parse_value(setting.value, setting.data_type)
