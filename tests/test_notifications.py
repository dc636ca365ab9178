import pytest

from library_backend.models.enums import NotificationCategory
from library_backend.models.notification import Notification
from library_backend.services import notifications, system_settings
from library_backend.services.errors import ForbiddenError, NotFoundError


class RecordingPublisher:
    def __init__(self):
        self.published = []

    def publish_notification(self, user_id, payload):
        self.published.append((user_id, payload))
        return True


@pytest.fixture
def publisher(monkeypatch):
    recorder = RecordingPublisher()
    monkeypatch.setattr(notifications.notifier, "publisher", recorder)
    return recorder


def _notify(db, user, title="Hello"):
    return notifications.notifier.dispatch(db, user.id, NotificationCategory.ACCOUNT_UPDATE, title, "Message")


def test_dispatch_stores_and_publishes(db, member, publisher):
    notification = _notify(db, member)

    assert notification.read is False
    assert publisher.published[0][0] == member.id
    assert publisher.published[0][1]["category"] == "ACCOUNT_UPDATE"


def test_dispatch_respects_setting(db, member, publisher):
    system_settings.update_setting(db, "system.notifications_enabled", False)

    assert _notify(db, member) is None
    assert db.query(Notification).count() == 0
    assert publisher.published == []


def test_dispatch_swallows_failures(db, member, monkeypatch):
    def broken(user_id, payload):
        raise ConnectionError("broker down")

    monkeypatch.setattr(notifications.notifier.publisher, "publish_notification", broken)
    assert _notify(db, member) is None


def test_read_state_and_counts(db, member, publisher):
    first = _notify(db, member, "First")
    _notify(db, member, "Second")

    assert notifications.unread_count(db, member.id, member) == 2
    notifications.mark_read(db, first.id, member)
    assert notifications.unread_count(db, member.id, member) == 1

    items, _ = notifications.list_notifications(db, member.id, member, read=False)
    assert [n.title for n in items] == ["Second"]

    assert notifications.mark_all_read(db, member) == 1
    assert notifications.unread_count(db, member.id, member) == 0


def test_notifications_are_private(db, member, make_user, admin, publisher):
    notification = _notify(db, member)
    stranger = make_user()

    with pytest.raises(ForbiddenError):
        notifications.mark_read(db, notification.id, stranger)
    with pytest.raises(ForbiddenError):
        notifications.list_notifications(db, member.id, stranger)

    notifications.delete_notification(db, notification.id, admin)
    with pytest.raises(NotFoundError):
        notifications.mark_read(db, notification.id, member)


def test_delete_all_clears_only_own_notifications(db, member, make_user, publisher):
    other = make_user()
    _notify(db, member, "One")
    _notify(db, member, "Two")
    _notify(db, other)

    assert notifications.delete_all(db, member) == 2

    assert db.query(Notification).filter(Notification.user_id == member.id).count() == 0
    assert db.query(Notification).filter(Notification.user_id == other.id).count() == 1
