"""
예외 알림 디스패처 모듈

등록된 채널마다 독립적으로 억제 판단, 컨텍스트 추출, 렌더링, 전송을 수행합니다.
"""

import functools
import sys
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, TypeVar, Union, cast

from .config import DeliveryMode, get_settings
from .errors import DeliveryFailure, ExceptionNotifyError, RenderFailure
from .handlers.base import BaseHandler
from .ignore import IgnorePolicy
from .logger import get_logger
from .registry import NotifierRegistry
from .renderer import RenderedMessage

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class NotificationStatus(str, Enum):
    SUPPRESSED = "suppressed"
    DELIVERED = "delivered"
    SCHEDULED = "scheduled"
    FAILED = "failed"


@dataclass
class DispatchResult:
    notifier: str
    status: NotificationStatus
    message: Optional[RenderedMessage] = None
    error: Optional[ExceptionNotifyError] = None
    future: Optional[Future] = None


class BackgroundDelivery:
    """
    요청 처리 흐름 밖에서 전송을 수행하는 스레드 풀

    전송 결과는 호출자에게 전달되지 않고 로그로만 남습니다.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or get_settings().BACKGROUND_WORKERS,
            thread_name_prefix="exception-notify",
        )

    def submit(self, name: str, deliver: Callable[[RenderedMessage], None], message: RenderedMessage) -> Future:
        future = self._executor.submit(deliver, message)
        future.add_done_callback(functools.partial(self._log_outcome, name))
        return future

    @staticmethod
    def _log_outcome(name: str, future: Future) -> None:
        if future.cancelled():
            logger.warning(f"Background delivery via '{name}' was cancelled")
            return
        error = future.exception()
        if error is None:
            logger.debug(f"Background delivery via '{name}' completed")
        else:
            logger.error(
                f"Background delivery via '{name}' failed: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class ExceptionNotifier:
    """
    예외 처리 및 알림을 위한 클래스

    레지스트리에 등록된 채널마다 다음 순서를 독립적으로 수행합니다.
        IgnorePolicy -> ContextExtractor -> ReportRenderer -> deliver
    한 채널의 억제나 실패는 다른 채널에 영향을 주지 않습니다.
    """

    def __init__(
        self,
        registry: Optional[NotifierRegistry] = None,
        ignore_policy: Optional[IgnorePolicy] = None,
        background: Optional[BackgroundDelivery] = None,
        default_mode: Optional[Union[DeliveryMode, str]] = None,
    ):
        """
        예외 알리미 초기화

        Args:
            registry: 채널 레지스트리
            ignore_policy: 억제 정책 (None일 경우 설정의 전역 무시 목록 사용)
            background: 백그라운드 전송 풀 (None일 경우 처음 필요할 때 생성)
            default_mode: 기본 전송 방식
        """
        self.registry = registry if registry is not None else NotifierRegistry()
        self.ignore_policy = ignore_policy or IgnorePolicy()
        self._background = background
        self.default_mode = DeliveryMode(default_mode or get_settings().DELIVERY_MODE)

    @property
    def background(self) -> BackgroundDelivery:
        if self._background is None:
            self._background = BackgroundDelivery()
        return self._background

    def notify(
        self,
        exception: Optional[BaseException] = None,
        env: Any = None,
        data: Any = None,
        excluding: Iterable[str] = (),
        mode: Optional[Union[DeliveryMode, str]] = None,
    ) -> List[DispatchResult]:
        """
        등록된 모든 채널(제외 목록 제외)에 예외 알림 전송

        Args:
            exception: 예외 객체 (None일 경우 현재 처리 중인 예외)
            env: 요청 환경 맵
            data: 추가 데이터
            excluding: 제외할 채널 이름
            mode: 전송 방식 (None일 경우 default_mode)

        Returns:
            채널별 DispatchResult 목록 (등록 순서)

        Raises:
            RenderFailure: 어떤 채널에서든 메시지를 렌더링하지 못한 경우
            DeliveryFailure: INLINE 방식에서 전송에 실패한 채널이 있는 경우
        """
        if exception is None:
            exception = sys.exc_info()[1]
            if exception is None:
                raise ValueError("No exception to notify about")

        mode = DeliveryMode(mode or self.default_mode)
        results = [
            self._dispatch_one(name, handler, exception, env, data, mode)
            for name, handler in self.registry.notifiers_except(excluding)
        ]
        self._raise_failures(results)
        return results

    def create_message(self, name: str, exception: BaseException, env: Any = None, data: Any = None) -> RenderedMessage:
        """억제 판단이나 전송 없이 해당 채널의 메시지만 렌더링"""
        return self.registry.get(name).create_message(exception, env, data)

    def _dispatch_one(
        self,
        name: str,
        handler: BaseHandler,
        exception: BaseException,
        env: Any,
        data: Any,
        mode: DeliveryMode,
    ) -> DispatchResult:
        try:
            config = handler.config_for(env)
            if not self.ignore_policy.should_notify(exception, env, config):
                return DispatchResult(name, NotificationStatus.SUPPRESSED)
            message = handler.create_message(exception, env, data, config)
        except RenderFailure as e:
            logger.error(f"Failed to render notification for '{name}': {e}")
            return DispatchResult(name, NotificationStatus.FAILED, error=e)
        except Exception as e:
            logger.exception(f"Unexpected error preparing notification for '{name}'")
            failure = RenderFailure(f"Failed to render notification for '{name}': {e}")
            failure.__cause__ = e
            return DispatchResult(name, NotificationStatus.FAILED, error=failure)

        if mode is DeliveryMode.BACKGROUND:
            future = self.background.submit(name, functools.partial(self._deliver, name, handler), message)
            return DispatchResult(name, NotificationStatus.SCHEDULED, message=message, future=future)

        try:
            self._deliver(name, handler, message)
        except DeliveryFailure as e:
            logger.error(f"Delivery via '{name}' failed: {e}")
            return DispatchResult(name, NotificationStatus.FAILED, message=message, error=e)
        return DispatchResult(name, NotificationStatus.DELIVERED, message=message)

    @staticmethod
    def _deliver(name: str, handler: BaseHandler, message: RenderedMessage) -> None:
        try:
            handler.deliver(message)
        except DeliveryFailure as e:
            if e.notifier is None:
                e.notifier = name
            raise
        except Exception as e:
            raise DeliveryFailure(f"Delivery via '{name}' failed: {e}", notifier=name, cause=e) from e

    @staticmethod
    def _raise_failures(results: List[DispatchResult]) -> None:
        # 모든 채널을 처리한 뒤에 렌더링 실패, 전송 실패 순으로 첫 번째 오류를 던짐
        errors = [result.error for result in results if result.error is not None]
        for error_type in (RenderFailure, DeliveryFailure):
            for error in errors:
                if isinstance(error, error_type):
                    raise error

    def catch(
        self,
        reraise: bool = True,
        data: Optional[dict] = None,
        mode: Optional[Union[DeliveryMode, str]] = None,
    ) -> Callable[[F], F]:
        """
        예외를 캐치하고 알림을 보내는 데코레이터

        Args:
            reraise: 처리 후 예외를 다시 발생시킬지 여부
            data: 추가 데이터
            mode: 전송 방식

        Returns:
            함수 데코레이터
        """

        def decorator(func: F) -> F:
            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    notify_data = {"function": f"{func.__module__}.{func.__qualname__}", **(data or {})}
                    self._notify_safely(e, notify_data, mode)
                    if reraise:
                        raise
                    return None

            return cast(F, wrapper)

        return decorator

    def context_handler(
        self,
        reraise: bool = True,
        env: Any = None,
        data: Optional[dict] = None,
        mode: Optional[Union[DeliveryMode, str]] = None,
    ):
        """
        컨텍스트 관리자로 사용할 수 있는 예외 처리기

        Args:
            reraise: 처리 후 예외를 다시 발생시킬지 여부
            env: 요청 환경 맵
            data: 추가 데이터
            mode: 전송 방식

        Returns:
            컨텍스트 관리자
        """
        notifier = self

        class ContextHandler:
            def __enter__(self):
                return self

            def __exit__(self, exc_type, exc_val, exc_tb):
                if exc_type is None or not issubclass(exc_type, Exception):
                    return False
                notifier._notify_safely(exc_val, data, mode, env)
                return not reraise

        return ContextHandler()

    def _notify_safely(self, exception: BaseException, data: Any, mode: Any, env: Any = None) -> None:
        # 알림 실패가 원래 예외를 가리지 않도록 로그만 남김
        try:
            self.notify(exception, env=env, data=data, mode=mode)
        except ExceptionNotifyError as e:
            logger.error(f"Exception notification failed: {e}")
