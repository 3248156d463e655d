"""
알림 채널 핸들러 기본 클래스
"""

from datetime import datetime
from typing import Any, Callable, Optional

from ..config import NotifierConfig
from ..extractor import ContextExtractor, request_options
from ..renderer import RenderedMessage, ReportRenderer
from ..report import ExceptionReport


class BaseHandler:
    """
    모든 알림 채널 핸들러의 기본 클래스

    채널 하나의 설정(NotifierConfig)과 전송 방법(deliver)을 함께 가집니다.
    """

    def __init__(
        self,
        config: Optional[NotifierConfig] = None,
        renderer: Optional[ReportRenderer] = None,
        clock: Optional[Callable[[], datetime]] = None,
        **options,
    ):
        """
        핸들러 초기화

        Args:
            config: 채널 설정 (None일 경우 options 로 생성)
            renderer: 리포트 렌더러
            clock: 리포트 타임스탬프에 사용할 시각 함수
            **options: NotifierConfig 필드 (config 가 주어지면 덮어쓰기)
        """
        if config is None:
            config = NotifierConfig(**options)
        elif options:
            config = config.merged(options)

        self.name = type(self).__name__
        self.config = config
        self.renderer = renderer or ReportRenderer()
        self.clock = clock

    def config_for(self, env: Any = None) -> NotifierConfig:
        """요청 환경의 옵션을 반영한 설정"""
        return self.config.merged(request_options(env))

    def build_report(
        self, exception: BaseException, env: Any = None, data: Any = None, config: Optional[NotifierConfig] = None
    ) -> ExceptionReport:
        extractor = ContextExtractor(config or self.config_for(env), clock=self.clock)
        return extractor.extract(exception, env, data)

    def create_message(
        self, exception: BaseException, env: Any = None, data: Any = None, config: Optional[NotifierConfig] = None
    ) -> RenderedMessage:
        """
        알림 여부 판단 없이 메시지를 렌더링

        Args:
            exception: 발생한 예외
            env: 요청 환경 맵
            data: 추가 데이터
            config: 사용할 설정 (None일 경우 config_for(env))

        Returns:
            RenderedMessage
        """
        config = config or self.config_for(env)
        report = self.build_report(exception, env, data, config)
        return self.renderer.render(report, config)

    def deliver(self, message: RenderedMessage) -> None:
        """
        메시지 전송 - 하위 클래스에서 구현해야 합니다.

        Raises:
            DeliveryFailure: 전송 실패 시
        """
        raise NotImplementedError("Subclasses must implement deliver method")

    def emit(self, exception: BaseException, env: Any = None, data: Any = None) -> RenderedMessage:
        message = self.create_message(exception, env, data)
        self.deliver(message)
        return message

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class CallbackHandler(BaseHandler):
    """등록 시 전달된 함수로 전송하는 핸들러"""

    def __init__(self, config: NotifierConfig, deliver: Callable[[RenderedMessage], Any], **kwargs):
        super().__init__(config, **kwargs)
        self._deliver = deliver

    def deliver(self, message: RenderedMessage) -> None:
        self._deliver(message)
