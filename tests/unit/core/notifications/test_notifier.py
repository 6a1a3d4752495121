# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import requests

from mxops.core.models import (
    ActionStatusEnum,
    ActionTypeEnum,
    EmailTemplateModel,
    NotificationEmailAddressModel,
    TemplateTypeEnum,
)
from mxops.core.notifications import MandrillSender, Notifier
from mxops.core.notifications.notifier import (
    build_variables,
    format_duration,
    render_template,
)
from mxops.core.settings import Settings


def test_render_template_unknown_variables_are_empty():
    rendered = render_template(
        "{{action_type}} on {{ environment_name }}: {{unknown}}",
        {"action_type": "Deploy", "environment_name": "Production"},
    )

    assert rendered == "Deploy on Production: "


def test_render_template_escapes_html_only():
    variables = {"error_message": "500 - <html>Bad & broken</html>"}

    assert render_template("<p>{{ error_message }}</p>", variables, html=True) == (
        "<p>500 - &lt;html&gt;Bad &amp; broken&lt;/html&gt;</p>"
    )
    assert render_template("Failed: {{ error_message }}", variables) == (
        "Failed: 500 - <html>Bad & broken</html>"
    )


@pytest.mark.parametrize(
    "seconds,expected",
    [(None, "N/A"), (30, "less than 1 minute"), (60, "1 minutes"), (754, "12 minutes")],
)
def test_format_duration(clock, seconds, expected):
    start = clock()
    end = start + timedelta(seconds=seconds) if seconds is not None else None

    assert format_duration(start, end) == expected


def test_build_variables(make_action, clock):
    started = clock() - timedelta(minutes=5)
    succeeded = make_action(
        ActionTypeEnum.RESTART,
        status=ActionStatusEnum.SUCCEEDED,
        environment_name="Acceptance",
        started_at=started,
        completed_at=clock(),
    )
    failed = make_action(
        ActionTypeEnum.DEPLOY,
        status=ActionStatusEnum.FAILED,
        attempt_count=3,
        error_message="Package pkg-1 build failed",
        started_at=started,
        completed_at=clock(),
    )

    variables = build_variables(succeeded, success=True)
    assert variables["action_type"] == "Restart"
    assert variables["duration"] == "5 minutes"
    assert variables["started_at"] == "2024-05-01 11:55:00 UTC"
    assert variables["failed_at"] == ""
    assert variables["summary"] == "Restart of Acceptance completed successfully."

    variables = build_variables(failed, success=False)
    assert variables["failed_at"] == "2024-05-01 12:00:00 UTC"
    assert variables["attempt_count"] == "3"
    assert variables["summary"] == (
        "Deploy of test failed after 3 attempt(s): Package pkg-1 build failed"
    )


@pytest.fixture
def templates(db_session):
    db_session.add_all(
        [
            EmailTemplateModel(
                user_id="user-1",
                template_type=TemplateTypeEnum.SUCCESS,
                subject_template="{{action_type}} succeeded",
                html_template="<p>{{summary}}</p>",
            ),
            EmailTemplateModel(
                user_id="user-1",
                template_type=TemplateTypeEnum.FAILURE,
                subject_template="{{action_type}} failed",
                html_template="<p>{{error_message}}</p>",
            ),
            NotificationEmailAddressModel(
                user_id="user-1", email_address="ops@example.com", display_name="Ops"
            ),
            NotificationEmailAddressModel(
                user_id="user-1", email_address="off@example.com", is_active=False
            ),
            NotificationEmailAddressModel(
                user_id="user-1",
                email_address="muted@example.com",
                cloud_action_notifications_enabled=False,
            ),
        ]
    )
    db_session.commit()


def test_notify_success(db_engine, templates, make_action):
    sender = MagicMock()
    action = make_action(status=ActionStatusEnum.SUCCEEDED)

    Notifier(db_engine, sender).notify(action, success=True)

    sender.send.assert_called_once_with(
        "Start succeeded",
        "<p>Start of test completed successfully.</p>",
        [("ops@example.com", "Ops")],
    )


def test_notify_failure(db_engine, templates, make_action):
    sender = MagicMock()
    action = make_action(
        status=ActionStatusEnum.FAILED, error_message="500 - <b>A & B</b>"
    )

    Notifier(db_engine, sender).notify(action, success=False)

    subject, html, _ = sender.send.call_args.args
    assert subject == "Start failed"
    assert html == "<p>500 - &lt;b&gt;A &amp; B&lt;/b&gt;</p>"


def test_notify_without_template(db_engine, make_action):
    sender = MagicMock()

    Notifier(db_engine, sender).notify(make_action(), success=True)

    sender.send.assert_not_called()


def test_notify_swallows_sender_errors(db_engine, templates, make_action, caplog):
    sender = MagicMock()
    sender.send.side_effect = requests.HTTPError("500 Server Error")
    action = make_action()

    Notifier(db_engine, sender).notify(action, success=True)

    assert f"Failed to send the notification of action {action.id}" in caplog.text


def test_notifier_from_settings(db_engine):
    assert Notifier.from_settings(db_engine, Settings()).sender is None

    notifier = Notifier.from_settings(
        db_engine, Settings(MANDRILL_API_KEY="mandrill-key")
    )
    assert isinstance(notifier.sender, MandrillSender)
    assert notifier.sender.api_key == "mandrill-key"


def test_mandrill_sender_payload(caplog):
    session = MagicMock()
    session.post.return_value.content = b"[]"
    session.post.return_value.json.return_value = [
        {"email": "ops@example.com", "status": "sent"},
        {"email": "bad@example", "status": "invalid", "reject_reason": None},
    ]
    sender = MandrillSender(
        api_key="mandrill-key",
        url="https://mandrill.example.com/send.json",
        from_email="noreply@example.com",
        from_name="Ops Bot",
        timeout=5,
        session=session,
    )

    sender.send("Subject", "<p>Body</p>", [("ops@example.com", None)])

    session.post.assert_called_once_with(
        "https://mandrill.example.com/send.json",
        json={
            "key": "mandrill-key",
            "message": {
                "html": "<p>Body</p>",
                "subject": "Subject",
                "from_email": "noreply@example.com",
                "from_name": "Ops Bot",
                "to": [{"email": "ops@example.com", "name": "ops@example.com"}],
                "preserve_recipients": False,
            },
        },
        timeout=5,
    )
    session.post.return_value.raise_for_status.assert_called_once()
    assert "Mandrill invalid bad@example" in caplog.text


def test_mandrill_sender_http_error():
    session = MagicMock()
    session.post.return_value.raise_for_status.side_effect = requests.HTTPError()
    sender = MandrillSender("key", "https://mandrill.example.com", "a@b.c", "A", 5, session)

    with pytest.raises(requests.HTTPError):
        sender.send("Subject", "Body", [("ops@example.com", "Ops")])
