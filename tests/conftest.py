from datetime import datetime

import pytest
import pytz

from exception_notify import NotifierConfig, NotifierRegistry, Section
from exception_notify.extractor import PARAMS_KEY, SESSION_KEY, qualified_name

FIXED_TIME = datetime(2013, 4, 20, 20, 58, 55, tzinfo=pytz.utc)


class NoMethodError(Exception):
    pass


class IgnoredError(Exception):
    pass


def method_missing(name):
    raise NoMethodError(f"undefined method '{name}' for nil")


def create(params):
    return method_missing("nw")


def capture(func, *args):
    try:
        func(*args)
    except Exception as e:
        return e
    raise AssertionError("expected an exception")


@pytest.fixture
def exception():
    return capture(create, {})


@pytest.fixture
def ignored_exception():
    def raise_ignored():
        raise IgnoredError("not worth an email")

    return capture(raise_ignored)


@pytest.fixture
def clock():
    return lambda: FIXED_TIME


@pytest.fixture
def request_env():
    return {
        "REQUEST_METHOD": "POST",
        "PATH_INFO": "/posts",
        "QUERY_STRING": "",
        "HTTP_HOST": "test.host",
        "wsgi.url_scheme": "http",
        "REMOTE_ADDR": "192.168.1.1",
        "HTTP_USER_AGENT": "Rails Testing",
        PARAMS_KEY: {"post": {"title": "MyString", "body": "MyText", "secret": "x"}},
        SESSION_KEY: {"session_id": "abc123", "user_id": 7},
    }


@pytest.fixture
def secure_env(request_env):
    return {**request_env, "HTTPS": "on", "wsgi.url_scheme": "https"}


@pytest.fixture
def config_options():
    return {
        "email_prefix": "[Dummy ERROR] ",
        "sender_address": "dummynotifier@example.com",
        "exception_recipients": ["dummyexceptions@example.com"],
        "custom_headers": {"X-Custom-Header": "foobar"},
        "sections": [Section("New section", lambda report: "* New text section for testing")],
        "background_sections": [
            Section("New background section", lambda report: "* New background section for testing")
        ],
        "ignored_exceptions": {qualified_name(IgnoredError)},
    }


@pytest.fixture
def config(config_options):
    return NotifierConfig(**config_options)


@pytest.fixture
def registry():
    return NotifierRegistry()
