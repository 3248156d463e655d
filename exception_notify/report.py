"""
예외 리포트 값 객체
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Generic, Mapping, NamedTuple, Optional, Tuple, TypeVar

from .logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FAILED_SUMMARY = "ERROR: Failed to generate exception summary"


def failure_message(section: str, error: BaseException) -> str:
    return f"{FAILED_SUMMARY} ({section}): {type(error).__name__}: {error}"


class CauseEntry(NamedTuple):
    exception_class: str
    message: str


@dataclass(frozen=True)
class SectionResult(Generic[T]):
    """
    리포트 하위 섹션 하나의 생성 결과

    성공하면 value 를, 실패하면 기본값과 경고 메시지를 담습니다.
    """

    name: str
    value: Optional[T] = None
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.warning is None

    @classmethod
    def capture(cls, name: str, build: Callable[[], T], default: Optional[T] = None) -> "SectionResult[T]":
        """
        섹션 생성 함수를 실행하고 실패를 경고로 변환

        Args:
            name: 섹션 이름 (경고 메시지에 포함)
            build: 섹션 값을 만드는 함수
            default: 실패 시 사용할 값

        Returns:
            SectionResult
        """
        try:
            return cls(name, build())
        except Exception as e:
            warning = failure_message(name, e)
            logger.warning(warning)
            return cls(name, default, warning)


_SCALARS = (str, bytes, int, float, bool, type(None))


class FrozenList(tuple):
    """리포트 안에 고정된 list (렌더링 시 다시 list 로 표시)"""

    def __eq__(self, other):
        if isinstance(other, list):
            return list(self) == other
        return tuple.__eq__(self, other)

    __hash__ = tuple.__hash__


def freeze(value: Any) -> Any:
    """
    중첩 구조를 호출자와 공유하지 않는 읽기 전용 복사본으로 변환

    매핑은 MappingProxyType, list 는 FrozenList, set 은 frozenset 이 되고
    그 밖의 객체는 deepcopy 합니다. 복사할 수 없는 객체는 그대로 둡니다.
    """
    if isinstance(value, _SCALARS):
        return value
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return FrozenList(freeze(item) for item in value)
    if type(value) is tuple:
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(value)
    try:
        return copy.deepcopy(value)
    except (copy.Error, TypeError) as e:
        logger.debug(f"Keeping uncopyable {type(value).__name__} in report: {e}")
        return value


def thaw(value: Any) -> Any:
    """freeze 의 역변환 (렌더링용 일반 dict/list)"""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, FrozenList):
        return [thaw(item) for item in value]
    if type(value) is tuple:
        return tuple(thaw(item) for item in value)
    return value


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return freeze(dict(mapping or {}))


@dataclass(frozen=True)
class ExceptionReport:
    """
    추출 시점에 완성되는 예외 리포트

    생성 이후에는 변경되지 않으며, 디스패치마다 새로 만들어집니다.
    """

    exception_class: str
    exception_name: str
    message: str
    timestamp: datetime
    cause_chain: Tuple[CauseEntry, ...] = ()
    backtrace: Tuple[str, ...] = ()
    request_metadata: Mapping[str, str] = field(default_factory=dict)
    parameters: Mapping[str, Any] = field(default_factory=dict)
    session_data: Mapping[str, Any] = field(default_factory=dict)
    environment: Mapping[str, Any] = field(default_factory=dict)
    custom_data: Mapping[str, Any] = field(default_factory=dict)
    extraction_warnings: Tuple[str, ...] = ()
    is_background: bool = False
    is_secure: bool = False

    def __post_init__(self):
        for name in ("request_metadata", "parameters", "session_data", "environment", "custom_data"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))
        object.__setattr__(self, "cause_chain", tuple(CauseEntry(*entry) for entry in self.cause_chain))
        object.__setattr__(self, "backtrace", tuple(self.backtrace))
        object.__setattr__(self, "extraction_warnings", tuple(self.extraction_warnings))
