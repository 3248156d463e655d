from unittest.mock import MagicMock

import pytest

from exception_notify import (
    BackgroundDelivery,
    DeliveryFailure,
    DeliveryMode,
    ExceptionNotifier,
    IgnorePolicy,
    NotificationStatus,
    NotifierConfig,
    RenderFailure,
    ReportRenderer,
)
from exception_notify.extractor import OPTIONS_KEY


@pytest.fixture
def background():
    pool = BackgroundDelivery(max_workers=2)
    yield pool
    pool.shutdown()


@pytest.fixture
def notifier(registry, background):
    return ExceptionNotifier(registry, IgnorePolicy(ignored_exceptions=[]), background, default_mode="inline")


def failing_delivery(message):
    raise ConnectionError("smtp down")


def test_inline_delivery_to_every_notifier(notifier, registry, config, exception, request_env):
    first, second = [], []
    registry.register("first", config, first.append)
    registry.register("second", config, second.append)

    results = notifier.notify(exception, request_env)

    assert [result.status for result in results] == [NotificationStatus.DELIVERED] * 2
    assert len(first) == len(second) == 1
    assert first[0].subject.startswith("[Dummy ERROR] (NoMethodError)")


def test_suppression_is_per_notifier(notifier, registry, config, ignored_exception):
    strict, relaxed = [], []
    registry.register("strict", config, strict.append)
    registry.register("relaxed", NotifierConfig(), relaxed.append)

    results = notifier.notify(ignored_exception)

    assert [result.status for result in results] == [NotificationStatus.SUPPRESSED, NotificationStatus.DELIVERED]
    assert strict == []
    assert len(relaxed) == 1


def test_excluding_skips_named_notifiers(notifier, registry, config, exception):
    delivered = []
    registry.register("email", config, delivered.append)
    registry.register("slack", config, MagicMock())

    results = notifier.notify(exception, excluding=["slack"])

    assert [result.notifier for result in results] == ["email"]


def test_inline_failure_is_raised_after_all_notifiers_run(notifier, registry, config, exception, request_env):
    delivered = []
    registry.register("broken", config, failing_delivery)
    registry.register("working", config, delivered.append)

    with pytest.raises(DeliveryFailure) as exc_info:
        notifier.notify(exception, request_env)

    assert exc_info.value.notifier == "broken"
    assert isinstance(exc_info.value.cause, ConnectionError)
    assert len(delivered) == 1


def test_background_delivery_is_scheduled(notifier, registry, config, exception, request_env):
    delivered = []
    registry.register("email", config, delivered.append)

    results = notifier.notify(exception, request_env, mode=DeliveryMode.BACKGROUND)

    assert results[0].status is NotificationStatus.SCHEDULED
    results[0].future.result(timeout=5)
    assert delivered == [results[0].message]


def test_background_failure_is_not_raised(notifier, registry, config, exception):
    registry.register("broken", config, failing_delivery)

    results = notifier.notify(exception, mode="background")

    error = results[0].future.exception(timeout=5)
    assert isinstance(error, DeliveryFailure)
    assert error.notifier == "broken"


def test_render_failure_is_raised_in_any_mode(notifier, registry, exception, tmp_path):
    delivered = []
    broken_renderer = ReportRenderer(template_path=str(tmp_path / "missing.html"))
    handler = registry.register("html", NotifierConfig(email_format="html"), MagicMock())
    handler.renderer = broken_renderer
    registry.register("plain", NotifierConfig(), delivered.append)

    with pytest.raises(RenderFailure):
        notifier.notify(exception, mode="inline")
    assert len(delivered) == 1

    with pytest.raises(RenderFailure):
        notifier.notify(exception, mode="background")


def test_render_failure_wins_over_delivery_failure(notifier, registry, exception, tmp_path):
    registry.register("broken", NotifierConfig(), failing_delivery)
    handler = registry.register("html", NotifierConfig(email_format="html"), MagicMock())
    handler.renderer = ReportRenderer(template_path=str(tmp_path / "missing.html"))

    with pytest.raises(RenderFailure):
        notifier.notify(exception)


def test_request_options_override_config(notifier, registry, config, exception, request_env):
    delivered = []
    registry.register("email", config, delivered.append)

    notifier.notify(exception, {**request_env, OPTIONS_KEY: {"email_format": "html", "email_prefix": "[Req] "}})

    assert delivered[0].content_type == "multipart/alternative"
    assert delivered[0].subject.startswith("[Req] ")
    assert registry.get("email").config.email_format.value == "plain"


def test_create_message_does_not_deliver(notifier, registry, config, ignored_exception):
    deliver = MagicMock()
    registry.register("email", config, deliver)

    message = notifier.create_message("email", ignored_exception)

    assert "IgnoredError" in message.subject
    deliver.assert_not_called()


def test_notify_uses_exception_being_handled(notifier, registry, config):
    delivered = []
    registry.register("email", config, delivered.append)

    try:
        raise KeyError("current")
    except KeyError:
        notifier.notify()

    assert "(KeyError)" in delivered[0].subject


def test_notify_without_exception(notifier):
    with pytest.raises(ValueError):
        notifier.notify()


def test_catch_decorator_adds_function_name(notifier, registry, config):
    delivered = []
    registry.register("email", config, delivered.append)

    @notifier.catch(reraise=False, data={"job": "sync"})
    def sync_accounts():
        raise RuntimeError("sync failed")

    assert sync_accounts() is None
    data = delivered[0].report.custom_data
    assert data["job"] == "sync"
    assert data["function"].endswith("sync_accounts")


def test_catch_decorator_reraises_even_when_delivery_fails(notifier, registry, config):
    registry.register("broken", config, failing_delivery)

    @notifier.catch()
    def explode():
        raise RuntimeError("original")

    with pytest.raises(RuntimeError, match="original"):
        explode()


def test_context_handler(notifier, registry, config, request_env):
    delivered = []
    registry.register("email", config, delivered.append)

    with notifier.context_handler(reraise=False, env=request_env):
        raise RuntimeError("inside block")

    assert delivered[0].report.request_metadata["method"] == "POST"

    with pytest.raises(RuntimeError):
        with notifier.context_handler():
            raise RuntimeError("reraised")
    assert len(delivered) == 2


def test_invalid_request_options_do_not_block_delivery(notifier, registry, config, exception, request_env):
    delivered = []
    registry.register("email", config, delivered.append)

    results = notifier.notify(exception, {**request_env, OPTIONS_KEY: {"email_format": "pdf", "email_prefix": "[Req] "}})

    assert results[0].status is NotificationStatus.DELIVERED
    assert delivered[0].content_type == "text/plain; charset=UTF-8"
    assert delivered[0].subject.startswith("[Req] ")
