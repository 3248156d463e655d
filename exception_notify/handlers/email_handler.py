"""
이메일 알림 핸들러
"""

import smtplib
from typing import Any, Mapping, Optional

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..config import NotifierConfig, get_settings
from ..errors import DeliveryFailure
from ..logger import get_logger
from ..renderer import RenderedMessage
from .base import BaseHandler

logger = get_logger(__name__)


class SmtpTransport:
    """
    SMTP 서버로 메시지를 전송하는 전송 계층

    전송 실패 시 tenacity 로 재시도하고, 재시도가 모두 실패하면 DeliveryFailure 를 던집니다.
    """

    SETTING_KEYS = (
        "address",
        "port",
        "user_name",
        "password",
        "enable_starttls_auto",
        "ssl",
        "timeout",
        "retry_attempts",
        "retry_wait",
    )

    def __init__(
        self,
        address: Optional[str] = None,
        port: Optional[int] = None,
        user_name: Optional[str] = None,
        password: Optional[str] = None,
        enable_starttls_auto: bool = True,
        ssl: bool = False,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_wait: Optional[float] = None,
    ):
        settings = get_settings()
        self.address = address or settings.SMTP_ADDRESS
        self.port = int(port or settings.SMTP_PORT)
        self.user_name = user_name
        self.password = password
        self.enable_starttls_auto = enable_starttls_auto
        self.ssl = ssl
        self.timeout = timeout if timeout is not None else settings.SMTP_TIMEOUT
        self.retry_attempts = retry_attempts if retry_attempts is not None else settings.DELIVERY_RETRY_ATTEMPTS
        self.retry_wait = retry_wait if retry_wait is not None else settings.DELIVERY_RETRY_WAIT

    @classmethod
    def from_settings(cls, settings: Optional[Mapping[str, Any]]) -> "SmtpTransport":
        settings = dict(settings or {})
        unknown = [key for key in settings if key not in cls.SETTING_KEYS]
        if unknown:
            logger.warning(f"Ignoring unknown SMTP settings: {', '.join(unknown)}")
        return cls(**{key: value for key, value in settings.items() if key in cls.SETTING_KEYS})

    @property
    def settings(self) -> dict:
        return {key: getattr(self, key) for key in self.SETTING_KEYS}

    def deliver(self, message: RenderedMessage) -> None:
        if not message.recipients:
            raise DeliveryFailure("No exception recipients configured for email delivery")

        payload = message.as_string()
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_wait),
            retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._send(message, payload)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email delivery failed via {self.address}:{self.port}: {e}")
            raise DeliveryFailure(f"Email delivery failed: {e}", cause=e) from e

        logger.info(f"Exception notification sent to {', '.join(message.recipients)}: {message.subject}")

    def _send(self, message: RenderedMessage, payload: str) -> None:
        smtp_class = smtplib.SMTP_SSL if self.ssl else smtplib.SMTP
        with smtp_class(self.address, self.port, timeout=self.timeout) as smtp_server:
            if not self.ssl and self.enable_starttls_auto:
                smtp_server.ehlo()
                if smtp_server.has_extn("starttls"):
                    smtp_server.starttls()
                    smtp_server.ehlo()
            if self.user_name:
                smtp_server.login(self.user_name, self.password or "")
            smtp_server.sendmail(message.sender, message.recipients, payload)


class EmailHandler(BaseHandler):
    """
    이메일로 예외 리포트를 보내는 핸들러

    transport_settings 로 SMTP 전송 계층을 구성하며, 요청 단위 옵션으로 설정이 바뀌면
    메시지에 담긴 설정으로 새 전송 계층을 만듭니다.
    """

    def __init__(self, config: Optional[NotifierConfig] = None, transport: Optional[SmtpTransport] = None, **options):
        super().__init__(config, **options)
        self.transport = transport or SmtpTransport.from_settings(self.config.transport_settings)

    def create_email(self, exception: BaseException, env: Any = None, data: Any = None) -> RenderedMessage:
        return self.create_message(exception, env, data)

    def transport_for(self, message: RenderedMessage) -> SmtpTransport:
        if dict(message.delivery_settings) == dict(self.config.transport_settings):
            return self.transport
        return SmtpTransport.from_settings(message.delivery_settings)

    def deliver(self, message: RenderedMessage) -> None:
        self.transport_for(message).deliver(message)
