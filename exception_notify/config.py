"""
설정 관리 모듈

프로세스 전역 설정(Settings)과 알림 채널별 설정(NotifierConfig)을 관리합니다.
"""

import os
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Set

import pytz
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logger import get_logger

ENV = os.getenv("ENV", "local")
load_dotenv(f".env.{ENV}")

logger = get_logger(__name__)


class EmailFormat(str, Enum):
    PLAIN = "plain"
    HTML = "html"


class DeliveryMode(str, Enum):
    INLINE = "inline"
    BACKGROUND = "background"


class Section(NamedTuple):
    """리포트 본문에 추가되는 사용자 정의 섹션 (제목, 렌더러)"""

    title: str
    render: Callable[[Any], Any]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="EXCEPTION_NOTIFY_", extra="ignore")

    # App settings
    ENV: str = ENV
    APP_NAME: str = "exception-notify"

    # 메일 기본값
    EMAIL_PREFIX: str = "[ERROR] "
    SENDER_ADDRESS: str = "exception.notifier@example.com"
    EXCEPTION_RECIPIENTS: List[str] = []
    DEFAULT_HEADERS: Dict[str, str] = {"X-Mailer": "exception-notify"}

    # 프로세스 전역 무시 목록 (정규화된 클래스 이름)
    IGNORED_EXCEPTIONS: Set[str] = {
        "starlette.exceptions.HTTPException",
        "fastapi.exceptions.HTTPException",
        "fastapi.exceptions.RequestValidationError",
    }

    # SMTP settings
    SMTP_ADDRESS: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_TIMEOUT: float = 30.0
    DELIVERY_RETRY_ATTEMPTS: int = 3
    DELIVERY_RETRY_WAIT: float = 5.0

    # 전송 방식
    DELIVERY_MODE: DeliveryMode = DeliveryMode.INLINE
    BACKGROUND_WORKERS: int = 2

    TIMEZONE: str = "UTC"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(levelname)s - [%(name)s] %(message)s"
    LOG_FILE: Optional[str] = None


@lru_cache()
def get_settings() -> Settings:
    return Settings()


DEFAULT_SENSITIVE_KEYS = frozenset(
    {
        "password",
        "password_confirmation",
        "secret",
        "token",
        "api_key",
        "authorization",
        "cookie",
        "http_authorization",
        "http_cookie",
    }
)


class NotifierConfig(BaseModel):
    """
    알림 채널 하나의 설정

    채널마다 독립적으로 생성되며, 무시 규칙/필터링 규칙/렌더링 옵션을 모두 포함합니다.
    transport_settings 는 코어에서 해석하지 않고 전송 계층에 그대로 전달됩니다.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    verbose_subject: bool = True
    email_prefix: str = Field(default_factory=lambda: get_settings().EMAIL_PREFIX)
    subject_message_limit: int = 120
    sender_address: str = Field(default_factory=lambda: get_settings().SENDER_ADDRESS)
    exception_recipients: List[str] = Field(default_factory=lambda: list(get_settings().EXCEPTION_RECIPIENTS))

    ignored_exceptions: Set[str] = Field(default_factory=set)
    ignore_crawlers: Set[str] = Field(default_factory=set)
    ignore_if: Optional[Callable[[BaseException, Any], bool]] = None

    sensitive_keys: Set[str] = Field(default_factory=lambda: set(DEFAULT_SENSITIVE_KEYS))
    email_format: EmailFormat = EmailFormat.PLAIN
    custom_headers: Dict[str, str] = Field(default_factory=dict)
    sections: List[Section] = Field(default_factory=list)
    background_sections: List[Section] = Field(default_factory=list)

    transport_settings: Dict[str, Any] = Field(default_factory=dict)

    backtrace_root: Optional[str] = Field(default_factory=os.getcwd)
    max_cause_depth: int = 10
    timezone: str = Field(default_factory=lambda: get_settings().TIMEZONE)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("max_cause_depth", "subject_message_limit")
    @classmethod
    def check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "NotifierConfig":
        """
        요청 단위 옵션을 덮어쓴 새 설정 반환

        Args:
            overrides: 덮어쓸 옵션 (알 수 없거나 값이 잘못된 키는 경고 후 무시)

        Returns:
            새 NotifierConfig 인스턴스 (덮어쓸 값이 없으면 self)
        """
        if not overrides or not isinstance(overrides, Mapping):
            return self

        fields = type(self).model_fields
        known = {key: value for key, value in overrides.items() if key in fields}
        unknown = [key for key in overrides if key not in fields]
        if unknown:
            logger.warning(f"Ignoring unknown notifier options: {', '.join(map(str, unknown))}")
        if not known:
            return self

        data = {name: getattr(self, name) for name in fields}
        data.update(known)
        try:
            return type(self).model_validate(data)
        except ValidationError as e:
            invalid = {error["loc"][0] for error in e.errors() if error["loc"]}
            logger.warning(f"Ignoring invalid notifier options {sorted(map(str, invalid))}: {e}")
            valid = {key: value for key, value in known.items() if key not in invalid}
            if len(valid) == len(known):
                return self
            return self.merged(valid)
