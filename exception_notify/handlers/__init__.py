"""
알림 채널 핸들러 모듈
"""

from .base import BaseHandler, CallbackHandler
from .console_handler import ConsoleHandler
from .email_handler import EmailHandler, SmtpTransport
from .slack_handler import SlackHandler

__all__ = [
    "BaseHandler",
    "CallbackHandler",
    "ConsoleHandler",
    "EmailHandler",
    "SmtpTransport",
    "SlackHandler",
]
