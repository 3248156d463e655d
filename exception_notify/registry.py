"""
알림 채널 레지스트리
"""

import threading
from collections import OrderedDict
from typing import Callable, Iterable, List, Optional, Tuple

from .config import NotifierConfig
from .errors import ConfigurationError, UnknownNotifierError
from .handlers.base import BaseHandler, CallbackHandler
from .logger import get_logger

logger = get_logger(__name__)


class NotifierRegistry:
    """
    채널 이름 -> 핸들러 매핑

    애플리케이션 시작 시 등록하고 이후에는 여러 요청 스레드에서 동시에 읽습니다.
    등록/해제는 락으로 보호하고, 조회는 스냅샷을 반환하므로 전송 중에는 락을 잡지 않습니다.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._handlers: "OrderedDict[str, BaseHandler]" = OrderedDict()

    def register(
        self, name: str, config: NotifierConfig, deliver: Callable[..., None]
    ) -> BaseHandler:
        """
        설정과 전송 함수로 채널 등록

        Args:
            name: 채널 이름 (이미 있으면 교체)
            config: 채널 설정
            deliver: RenderedMessage 를 받아 전송하는 함수

        Returns:
            등록된 핸들러
        """
        if not callable(deliver):
            raise ConfigurationError(f"deliver for notifier '{name}' must be callable")
        return self.register_handler(name, CallbackHandler(config, deliver))

    def register_handler(self, name: str, handler: BaseHandler) -> BaseHandler:
        if not name:
            raise ConfigurationError("notifier name must not be empty")
        if not isinstance(handler, BaseHandler):
            raise ConfigurationError(f"notifier '{name}' must be a BaseHandler, got {type(handler).__name__}")

        handler.name = name
        with self._lock:
            # 재등록 시 기존 등록 순서 유지
            if name in self._handlers:
                logger.info(f"Re-registering notifier '{name}'")
            self._handlers[name] = handler
        return handler

    def unregister(self, name: str) -> Optional[BaseHandler]:
        with self._lock:
            return self._handlers.pop(name, None)

    def get(self, name: str) -> BaseHandler:
        with self._lock:
            handler = self._handlers.get(name)
        if handler is None:
            raise UnknownNotifierError(name)
        return handler

    def names(self) -> List[str]:
        with self._lock:
            return list(self._handlers)

    def notifiers_except(self, names: Iterable[str] = ()) -> List[Tuple[str, BaseHandler]]:
        """제외 목록에 없는 (이름, 핸들러) 목록을 등록 순서대로 반환"""
        if isinstance(names, str):
            names = (names,)
        excluded = set(names or ())
        with self._lock:
            return [(name, handler) for name, handler in self._handlers.items() if name not in excluded]

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._handlers

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
