import pytest

from library_backend.models.enums import SettingCategory
from library_backend.models.setting import Setting
from library_backend.services import system_settings
from library_backend.services.errors import BadRequestError, NotFoundError


def test_defaults_are_seeded_once(db):
    assert system_settings.seed_defaults(db) == 0
    assert db.query(Setting).count() == len(system_settings.DEFAULT_SETTINGS)


def test_values_are_parsed_by_type(db):
    assert system_settings.get_value(db, "loans.default_period_days") == 14
    assert system_settings.get_value(db, "system.notifications_enabled") is True
    assert system_settings.get_value(db, "library.name") == "City Public Library"
    assert system_settings.get_value(db, "missing.key", "fallback") == "fallback"


def test_update_validates_data_type(db):
    with pytest.raises(BadRequestError):
        system_settings.update_setting(db, "loans.max_renewals", "three")
    with pytest.raises(BadRequestError):
        system_settings.update_setting(db, "system.notifications_enabled", "yes")
    with pytest.raises(BadRequestError):
        system_settings.update_setting(db, "loans.max_renewals", True)

    setting = system_settings.update_setting(db, "fines.per_day_amount", 2.5)
    assert setting.value == "2.5"
    assert system_settings.get_value(db, "fines.per_day_amount") == 2.5


def test_reset_restores_default(db):
    system_settings.update_setting(db, "library.name", "Branch Library")
    setting = system_settings.reset_setting(db, "library.name")
    assert setting.value == "City Public Library"


def test_unknown_or_locked_settings(db):
    with pytest.raises(NotFoundError):
        system_settings.get_setting(db, "does.not.exist")

    locked = system_settings.get_setting(db, "system.currency")
    locked.is_editable = False
    db.commit()
    with pytest.raises(BadRequestError):
        system_settings.update_setting(db, "system.currency", "EUR")


def test_list_by_category(db):
    loans = system_settings.list_settings(db, SettingCategory.LOANS)
    assert {s.key for s in loans} == {
        "loans.default_period_days", "loans.max_renewals", "loans.max_books_per_user"
    }
    serialized = system_settings.serialize(loans[0])
    assert serialized["category"] == "LOANS"
    assert serialized["dataType"] == "NUMBER"
