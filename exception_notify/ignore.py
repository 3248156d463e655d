"""
알림 억제 정책 모듈
"""

from typing import Any, Iterable, Optional

from .config import NotifierConfig, get_settings
from .extractor import qualified_name, user_agent
from .logger import get_logger

logger = get_logger(__name__)


class IgnorePolicy:
    """
    예외/환경/채널 설정으로부터 알림 억제 여부를 결정

    검사는 순서대로 수행되며 처음 일치하는 규칙에서 바로 억제합니다.
        1. 예외 클래스의 정규화된 이름이 무시 목록에 있음
        2. User-Agent 에 크롤러 문자열이 포함됨
        3. ignore_if 조건이 참
    부수 효과가 없는 순수 판단이며, 환경 정보가 없거나 깨져 있어도 예외를 던지지 않습니다.
    """

    def __init__(self, ignored_exceptions: Optional[Iterable[str]] = None):
        if ignored_exceptions is None:
            ignored_exceptions = get_settings().IGNORED_EXCEPTIONS
        self.ignored_exceptions = frozenset(ignored_exceptions)

    def should_notify(self, exception: BaseException, env: Any, config: NotifierConfig) -> bool:
        if self.is_ignored_exception(exception, config):
            logger.debug(f"Suppressed ignored exception {qualified_name(type(exception))}")
            return False

        if self.from_crawler(env, config.ignore_crawlers):
            logger.debug("Suppressed exception raised for a crawler request")
            return False

        if self.matches_ignore_if(exception, env, config):
            logger.debug("Suppressed exception by ignore_if")
            return False

        return True

    def is_ignored_exception(self, exception: BaseException, config: NotifierConfig) -> bool:
        name = qualified_name(type(exception))
        return name in self.ignored_exceptions or name in config.ignored_exceptions

    @staticmethod
    def from_crawler(env: Any, crawlers: Iterable[str]) -> bool:
        """User-Agent 가 크롤러 목록 중 하나를 부분 문자열로 포함하는지 확인"""
        agent = user_agent(env)
        if not agent:
            return False
        return any(crawler and crawler in agent for crawler in crawlers)

    @staticmethod
    def matches_ignore_if(exception: BaseException, env: Any, config: NotifierConfig) -> bool:
        if config.ignore_if is None:
            return False
        try:
            return bool(config.ignore_if(exception, env))
        except Exception as e:
            # 조건 함수 오류로 알림이 누락되지 않도록 일치하지 않은 것으로 취급
            logger.warning(f"ignore_if raised {type(e).__name__}: {e}; notifying anyway")
            return False
