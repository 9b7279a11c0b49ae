"""Tests for notification preference resolution."""
import pytest

from projecthub.config import Settings
from projecthub.models import NotificationPreference, NotificationType
from projecthub.services.notification import NotificationPreferenceResolver


@pytest.fixture
def resolver():
    return NotificationPreferenceResolver()


def preference(**flags) -> NotificationPreference:
    columns = [
        column.name
        for column in NotificationPreference.__table__.columns
        if column.name.endswith(("_in_app", "_email"))
    ]
    values = {name: True for name in columns}
    values.update(flags)
    return NotificationPreference(**values)


@pytest.mark.parametrize("notification_type", list(NotificationType))
def test_no_preference_row_defaults(resolver, notification_type):
    send_in_app, send_email = resolver.resolve(notification_type, None)

    assert send_in_app is True
    if notification_type.value in NotificationPreferenceResolver.TYPE_TO_CATEGORY:
        assert send_email is True
    elif notification_type in (NotificationType.MENTIONED, NotificationType.SECURITY_ALERT):
        assert send_email is True
    else:
        assert send_email is False


def test_stored_flags_are_followed(resolver):
    pref = preference(task_comment_in_app=False, task_comment_email=True)
    assert resolver.resolve(NotificationType.TASK_COMMENTED, pref) == (False, True)

    pref = preference(task_status_in_app=True, task_status_email=False)
    assert resolver.resolve("TASK_STATUS_CHANGED", pref) == (True, False)


def test_due_soon_and_overdue_share_a_category(resolver):
    pref = preference(task_due_in_app=False, task_due_email=False)
    assert resolver.resolve(NotificationType.TASK_DUE_SOON, pref) == (False, False)
    assert resolver.resolve(NotificationType.TASK_OVERDUE, pref) == (False, False)


def test_mentions_cannot_be_silenced(resolver):
    pref = preference(**{name: False for name in ("task_comment_in_app", "task_comment_email")})
    assert resolver.resolve(NotificationType.MENTIONED, pref) == (True, True)


def test_security_alert_always_emails(resolver):
    pref = preference(task_assigned_email=False)
    assert resolver.resolve(NotificationType.SECURITY_ALERT, pref) == (True, True)


def test_unmapped_type_is_in_app_only(resolver):
    pref = preference()
    assert resolver.resolve(NotificationType.SYSTEM, pref) == (True, False)
    assert resolver.resolve("SOMETHING_NEW", None) == (True, False)


def test_overrides_are_configurable():
    resolver = NotificationPreferenceResolver(always_in_app=[], always_email=[])
    assert resolver.resolve(NotificationType.MENTIONED, None) == (True, False)


def test_mention_email_override_can_be_disabled_in_settings():
    resolver = NotificationPreferenceResolver.from_settings(
        Settings(notify_mentions_email_always=False)
    )

    assert resolver.resolve(NotificationType.MENTIONED, None) == (True, False)
    assert resolver.resolve(NotificationType.SECURITY_ALERT, None) == (True, True)
