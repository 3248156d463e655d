import smtplib
from unittest.mock import MagicMock, patch

import pytest

from exception_notify import (
    DeliveryFailure,
    EmailHandler,
    ExceptionNotifier,
    IgnorePolicy,
    NotificationStatus,
    SmtpTransport,
)
from exception_notify.extractor import OPTIONS_KEY, SESSION_KEY

SMTP_SETTINGS = {"user_name": "Dummy user_name", "password": "Dummy password", "retry_wait": 0}


@pytest.fixture
def handler(config, clock):
    return EmailHandler(config, clock=clock)


@pytest.fixture
def notifier(registry):
    return ExceptionNotifier(registry, IgnorePolicy(ignored_exceptions=[]), default_mode="inline")


class TestCreateEmail:
    @pytest.fixture(autouse=True)
    def setup(self, handler, exception, request_env):
        self.mail = handler.create_email(exception, request_env, data={"message": "My Custom Message"})

    def test_plain_text_content_type(self):
        assert self.mail.content_type == "text/plain; charset=UTF-8"

    def test_sender_and_recipients(self):
        assert self.mail.sender == "dummynotifier@example.com"
        assert self.mail.recipients == ["dummyexceptions@example.com"]

    def test_subject(self):
        assert self.mail.subject.startswith("[Dummy ERROR]")
        assert "(NoMethodError)" in self.mail.subject
        assert "undefined method 'nw' for nil" in self.mail.subject

    def test_body_contents(self):
        body = self.mail.text_body
        assert "in `create'" in body
        assert "Timestamp : 2013-04-20T20:58:55+00:00" in body
        assert "* New text section for testing" in body
        assert "My Custom Message" in body

    def test_sensitive_params_are_filtered(self):
        assert "'secret': '[FILTERED]'" in self.mail.text_body

    def test_custom_header(self):
        assert self.mail.headers["X-Custom-Header"] == "foobar"
        assert self.mail.to_mime()["X-Custom-Header"] == "foobar"

    def test_no_attachments(self):
        assert self.mail.attachments == []


def test_ignored_exception_is_not_sent(registry, notifier, config, ignored_exception):
    handler = registry.register_handler("email", EmailHandler(config))
    handler.deliver = MagicMock()

    results = notifier.notify(ignored_exception)

    assert results[0].status is NotificationStatus.SUPPRESSED
    handler.deliver.assert_not_called()


def test_session_id_filtered_for_secure_requests(handler, exception, secure_env):
    mail = handler.create_email(exception, secure_env)

    assert "* session id: [FILTERED]\n  * data: {'user_id': 7}" in mail.text_body


def test_crawler_requests_are_ignored(registry, notifier, config, exception, request_env):
    handler = registry.register_handler("email", EmailHandler(config))
    handler.deliver = MagicMock()
    env = {**request_env, "HTTP_USER_AGENT": "Mozilla/5.0 (compatible; Googlebot/2.1)", OPTIONS_KEY: {"ignore_crawlers": ["Googlebot"]}}

    results = notifier.notify(exception, env)

    assert results[0].status is NotificationStatus.SUPPRESSED
    handler.deliver.assert_not_called()


def test_html_email_from_request_options(handler, exception, request_env):
    mail = handler.create_email(exception, {**request_env, OPTIONS_KEY: {"email_format": "html"}})

    assert mail.content_type == "multipart/alternative"
    assert mail.to_mime().get_content_type() == "multipart/alternative"


def test_non_verbose_subject(exception, request_env):
    handler = EmailHandler(verbose_subject=False, email_prefix="[ERROR] ")

    assert handler.create_email(exception, request_env).subject == "[ERROR] # (NoMethodError)"


def test_bad_request_data_is_reported_in_body(handler, exception):
    mail = handler.create_email(exception, {})

    assert "ERROR: Failed to generate exception summary" in mail.text_body


def test_background_email_uses_background_sections(handler, exception):
    mail = handler.create_email(exception)

    assert "* New background section for testing" in mail.text_body
    assert "* New text section for testing" not in mail.text_body


def test_smtp_settings_travel_with_the_message(config, exception):
    handler = EmailHandler(config, transport_settings=SMTP_SETTINGS)

    assert handler.create_email(exception).delivery_settings["user_name"] == "Dummy user_name"
    assert handler.transport.user_name == "Dummy user_name"
    assert handler.transport.password == "Dummy password"


@pytest.mark.parametrize("mode", ["inline", "background"])
def test_smtp_login_uses_configured_credentials(registry, config, exception, request_env, mode):
    registry.register_handler("email", EmailHandler(config, transport_settings=SMTP_SETTINGS))
    notifier = ExceptionNotifier(registry, IgnorePolicy(ignored_exceptions=[]))

    with patch("smtplib.SMTP") as smtp_class:
        smtp_server = smtp_class.return_value.__enter__.return_value
        results = notifier.notify(exception, request_env, mode=mode)
        if results[0].future is not None:
            results[0].future.result(timeout=5)
    notifier.background.shutdown()

    smtp_server.login.assert_called_once_with("Dummy user_name", "Dummy password")
    sender, recipients, payload = smtp_server.sendmail.call_args[0]
    assert sender == "dummynotifier@example.com"
    assert recipients == ["dummyexceptions@example.com"]
    assert "Subject: [Dummy ERROR]" in payload


def test_request_smtp_settings_build_a_new_transport(config, exception, request_env):
    handler = EmailHandler(config)
    env = {**request_env, OPTIONS_KEY: {"transport_settings": {"address": "mail.example.com", "port": 2525}}}

    transport = handler.transport_for(handler.create_email(exception, env))

    assert transport is not handler.transport
    assert (transport.address, transport.port) == ("mail.example.com", 2525)


def test_smtp_failure_is_retried_then_raised(config, exception):
    transport = SmtpTransport(retry_attempts=2, retry_wait=0)
    handler = EmailHandler(config, transport=transport)

    with patch("smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")) as smtp_class:
        with pytest.raises(DeliveryFailure) as exc_info:
            handler.deliver(handler.create_email(exception))

    assert smtp_class.call_count == 2
    assert isinstance(exc_info.value.cause, smtplib.SMTPConnectError)


def test_missing_recipients_is_delivery_failure(exception):
    handler = EmailHandler(exception_recipients=[])

    with pytest.raises(DeliveryFailure):
        handler.deliver(handler.create_email(exception))


def test_unknown_smtp_settings_are_ignored():
    transport = SmtpTransport.from_settings({"address": "smtp.example.com", "authentication": "plain"})

    assert transport.address == "smtp.example.com"
    assert "authentication" not in transport.settings


@pytest.mark.parametrize("session", [None, {"user_id": 7}])
def test_secure_requests_always_filter_session_id(handler, exception, secure_env, session):
    env = {key: value for key, value in secure_env.items() if key != SESSION_KEY}
    if session is not None:
        env[SESSION_KEY] = session

    mail = handler.create_email(exception, env)

    assert "* session id: [FILTERED]" in mail.text_body
    assert "* session id: None" not in mail.text_body
