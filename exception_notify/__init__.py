"""
Exception-Notify - 요청 처리 중 발생한 예외 알림 라이브러리

예외의 알림 여부를 판단하고, 민감 정보를 가린 리포트를 만들어
등록된 채널(이메일, Slack, 콘솔 등)로 즉시 또는 백그라운드에서 전송합니다.
"""

__version__ = "0.1.0"

# 설정 관련 임포트
from .config import DeliveryMode, EmailFormat, NotifierConfig, Section, Settings, get_settings

# 오류 관련 임포트
from .errors import (
    ConfigurationError,
    DeliveryFailure,
    ExceptionNotifyError,
    MalformedEnvironmentError,
    RenderFailure,
    UnknownNotifierError,
)

# 파이프라인 구성 요소
from .extractor import ContextExtractor
from .filters import FILTERED, FilterPolicy, redact

# 핸들러 클래스 임포트
from .handlers import BaseHandler, CallbackHandler, ConsoleHandler, EmailHandler, SlackHandler, SmtpTransport
from .ignore import IgnorePolicy

# 로거 관련 임포트
from .logger import get_logger, setup_logger
from .notifier import BackgroundDelivery, DispatchResult, ExceptionNotifier, NotificationStatus
from .registry import NotifierRegistry
from .renderer import RenderedMessage, ReportRenderer
from .report import ExceptionReport, SectionResult

__all__ = [
    # 설정
    "Settings",
    "get_settings",
    "NotifierConfig",
    "EmailFormat",
    "DeliveryMode",
    "Section",
    # 로거
    "setup_logger",
    "get_logger",
    # 오류
    "ExceptionNotifyError",
    "ConfigurationError",
    "UnknownNotifierError",
    "MalformedEnvironmentError",
    "RenderFailure",
    "DeliveryFailure",
    # 파이프라인
    "FilterPolicy",
    "FILTERED",
    "redact",
    "IgnorePolicy",
    "ContextExtractor",
    "ExceptionReport",
    "SectionResult",
    "ReportRenderer",
    "RenderedMessage",
    "NotifierRegistry",
    "ExceptionNotifier",
    "BackgroundDelivery",
    "DispatchResult",
    "NotificationStatus",
    # 핸들러
    "BaseHandler",
    "CallbackHandler",
    "EmailHandler",
    "SmtpTransport",
    "SlackHandler",
    "ConsoleHandler",
]
