"""
예외 컨텍스트 추출 모듈

예외 객체와 요청 환경 맵으로부터 정규화된 ExceptionReport 를 만듭니다.
환경 맵이 비어 있거나 깨져 있어도 추출은 실패하지 않고 경고만 남깁니다.
"""

import os
import traceback
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import pytz

from .config import NotifierConfig
from .errors import MalformedEnvironmentError
from .filters import SESSION_ID_KEY, FilterPolicy
from .logger import get_logger
from .report import CauseEntry, ExceptionReport, SectionResult

logger = get_logger(__name__)

# 환경 맵에서 이 패키지가 사용하는 키
INTERNAL_PREFIX = "exception_notify."
OPTIONS_KEY = "exception_notify.options"
DATA_KEY = "exception_notify.exception_data"
PARAMS_KEY = "exception_notify.params"
SESSION_KEY = "exception_notify.session"
SESSION_ID_ENV_KEY = "exception_notify.session_id"

_SECURE_FLAGS = ("on", "1", "true", "yes")


def qualified_name(cls: type) -> str:
    """예외 클래스의 정규화된 이름 (builtins 는 모듈 접두사 없이)"""
    module = getattr(cls, "__module__", None)
    name = getattr(cls, "__qualname__", cls.__name__)
    if not module or module == "builtins":
        return name
    return f"{module}.{name}"


def safe_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__} object>"


def env_get(env: Any, key: str, default: Any = None) -> Any:
    if not isinstance(env, Mapping):
        return default
    return env.get(key, default)


def user_agent(env: Any) -> Optional[str]:
    """HTTP_USER_AGENT 키 또는 headers 매핑에서 User-Agent 를 찾음"""
    agent = env_get(env, "HTTP_USER_AGENT")
    if agent is None:
        headers = env_get(env, "headers")
        if isinstance(headers, Mapping):
            for key, value in headers.items():
                if isinstance(key, str) and key.lower() == "user-agent":
                    agent = value
                    break
    return safe_str(agent) if agent is not None else None


def is_secure(env: Any) -> bool:
    https = env_get(env, "HTTPS")
    if https is True or (isinstance(https, str) and https.lower() in _SECURE_FLAGS):
        return True
    if safe_str(env_get(env, "wsgi.url_scheme", "")).lower() == "https":
        return True
    return safe_str(env_get(env, "HTTP_X_FORWARDED_PROTO", "")).lower() == "https"


def request_options(env: Any) -> Optional[Mapping[str, Any]]:
    options = env_get(env, OPTIONS_KEY)
    return options if isinstance(options, Mapping) else None


def _next_cause(exception: BaseException) -> Optional[BaseException]:
    if exception.__cause__ is not None:
        return exception.__cause__
    if exception.__suppress_context__:
        return None
    return exception.__context__


def build_cause_chain(exception: BaseException, max_depth: int = 10) -> Tuple[CauseEntry, ...]:
    """
    __cause__ / __context__ 연결을 따라가며 원인 예외 목록 생성

    Args:
        exception: 최상위 예외
        max_depth: 최대 원인 개수

    Returns:
        (클래스 이름, 메시지) 튜플의 시퀀스 (순환 참조는 한 번만 기록)
    """
    chain: List[CauseEntry] = []
    seen = {id(exception)}
    current = _next_cause(exception)
    while current is not None and len(chain) < max_depth and id(current) not in seen:
        seen.add(id(current))
        chain.append(CauseEntry(qualified_name(type(current)), safe_str(current)))
        current = _next_cause(current)
    return tuple(chain)


class ContextExtractor:
    """
    예외와 환경 맵으로부터 리포트 컨텍스트를 추출하는 클래스

    각 하위 섹션은 SectionResult 로 독립적으로 생성되며,
    실패한 섹션은 경고 메시지로 남고 나머지 섹션은 계속 생성됩니다.
    """

    def __init__(self, config: NotifierConfig, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            config: 채널 설정
            clock: 현재 시각 함수 (None일 경우 설정된 타임존의 현재 시각)
        """
        self.config = config
        self.filter_policy = FilterPolicy(config.sensitive_keys)
        self.clock = clock or self._now

    def _now(self) -> datetime:
        return datetime.now(pytz.utc).astimezone(pytz.timezone(self.config.timezone))

    def extract(self, exception: BaseException, env: Any = None, data: Any = None) -> ExceptionReport:
        """
        리포트 추출

        Args:
            exception: 발생한 예외
            env: 요청 환경 맵 (None이면 요청 정보가 없는 백그라운드 리포트)
            data: 호출자가 전달한 추가 데이터 (필터링하지 않음)

        Returns:
            ExceptionReport
        """
        timestamp = self.clock()
        backtrace = SectionResult.capture("backtrace", lambda: self.format_backtrace(exception), ())
        custom = SectionResult.capture("data", lambda: self._custom_data(env, data), {})
        results: List[SectionResult] = [backtrace, custom]

        background = env is None
        secure = False
        request = session = parameters = environment = SectionResult("empty", {})
        if not background:
            secure = is_secure(env)
            request = SectionResult.capture("request", lambda: self._request_metadata(env, secure), {})
            session = SectionResult.capture("session", lambda: self._session(env, secure), {})
            parameters = SectionResult.capture("parameters", lambda: self._parameters(env), {})
            environment = SectionResult.capture("environment", lambda: self._environment(env), {})
            results.extend([request, session, parameters, environment])

        return ExceptionReport(
            exception_class=qualified_name(type(exception)),
            exception_name=type(exception).__name__,
            message=safe_str(exception),
            timestamp=timestamp,
            cause_chain=build_cause_chain(exception, self.config.max_cause_depth),
            backtrace=backtrace.value,
            request_metadata=request.value,
            parameters=parameters.value,
            session_data=session.value,
            environment=environment.value,
            custom_data=custom.value,
            extraction_warnings=[result.warning for result in results if not result.ok],
            is_background=background,
            is_secure=secure,
        )

    def format_backtrace(self, exception: BaseException) -> Tuple[str, ...]:
        """트레이스백을 가장 안쪽 프레임부터 "<file>:<line>:in `<function>'" 형식으로 변환"""
        tb = exception.__traceback__
        if tb is None:
            return ()
        frames = traceback.extract_tb(tb)
        return tuple(
            f"{self._clean_path(frame.filename)}:{frame.lineno}:in `{frame.name}'" for frame in reversed(frames)
        )

    def _clean_path(self, filename: str) -> str:
        root = self.config.backtrace_root
        if not root:
            return filename
        root = os.path.abspath(root)
        path = os.path.abspath(filename)
        if path.startswith(root + os.sep):
            return os.path.relpath(path, root)
        return filename

    @staticmethod
    def _require_mapping(env: Any) -> Mapping:
        if not isinstance(env, Mapping):
            raise MalformedEnvironmentError(f"environment is a {type(env).__name__}, not a mapping")
        return env

    def _request_metadata(self, env: Any, secure: bool) -> Dict[str, str]:
        env = self._require_mapping(env)
        if not env:
            raise MalformedEnvironmentError("environment is empty")

        metadata: Dict[str, str] = {}
        url = self._url(env, secure)
        if url:
            metadata["url"] = url

        path = env.get("PATH_INFO")
        if path is not None:
            metadata["path"] = safe_str(env.get("SCRIPT_NAME", "")) + safe_str(path)
        if env.get("QUERY_STRING"):
            metadata["query_string"] = safe_str(env["QUERY_STRING"])
        if env.get("REQUEST_METHOD") is not None:
            metadata["method"] = safe_str(env["REQUEST_METHOD"])

        forwarded = env.get("HTTP_X_FORWARDED_FOR")
        if forwarded:
            metadata["remote_ip"] = safe_str(forwarded).split(",")[0].strip()
        elif env.get("REMOTE_ADDR") is not None:
            metadata["remote_ip"] = safe_str(env["REMOTE_ADDR"])

        agent = user_agent(env)
        if agent is not None:
            metadata["user_agent"] = agent
        metadata["protocol"] = "https" if secure else "http"
        return metadata

    @staticmethod
    def _url(env: Mapping, secure: bool) -> Optional[str]:
        host = env.get("HTTP_HOST")
        if not host and env.get("SERVER_NAME"):
            host = safe_str(env["SERVER_NAME"])
            port = safe_str(env.get("SERVER_PORT", ""))
            if port and port not in ("80", "443"):
                host = f"{host}:{port}"
        if not host:
            return None

        scheme = safe_str(env.get("wsgi.url_scheme") or ("https" if secure else "http"))
        url = f"{scheme}://{safe_str(host)}{safe_str(env.get('SCRIPT_NAME', ''))}{safe_str(env.get('PATH_INFO', ''))}"
        if env.get("QUERY_STRING"):
            url += f"?{safe_str(env['QUERY_STRING'])}"
        return url

    def _session(self, env: Any, secure: bool) -> Dict[str, Any]:
        env = self._require_mapping(env)
        session = env.get(SESSION_KEY, env.get("session"))
        if session is None:
            return self.filter_policy.redact_session({}, secure)
        if not isinstance(session, Mapping):
            raise MalformedEnvironmentError(f"session is a {type(session).__name__}, not a mapping")

        data = dict(session)
        session_id = env.get(SESSION_ID_ENV_KEY, data.pop(SESSION_ID_KEY, None))
        if session_id is not None:
            data = {SESSION_ID_KEY: safe_str(session_id), **data}
        return self.filter_policy.redact_session(data, secure)

    def _parameters(self, env: Any) -> Dict[str, Any]:
        env = self._require_mapping(env)
        params = env.get(PARAMS_KEY)
        if params is None:
            return {}
        if not isinstance(params, Mapping):
            raise MalformedEnvironmentError(f"parameters are a {type(params).__name__}, not a mapping")
        return self.filter_policy.redact(dict(params))

    def _environment(self, env: Any) -> Dict[str, Any]:
        env = self._require_mapping(env)
        visible = {}
        for key in sorted(k for k in env if isinstance(k, str)):
            if key.startswith(INTERNAL_PREFIX) or key in (SESSION_KEY, "session", "headers"):
                continue
            visible[key] = self._summarize(env[key])
        return self.filter_policy.redact(visible)

    @staticmethod
    def _summarize(value: Any) -> Any:
        # 기본 타입과 간단한 컬렉션만 그대로 표시
        if isinstance(value, (str, int, float, bool, type(None))):
            return value
        if isinstance(value, bytes):
            return safe_str(value)
        if isinstance(value, (Mapping, list, tuple)):
            return value
        return f"<{type(value).__name__}>"

    @staticmethod
    def _custom_data(env: Any, data: Any) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        attached = env_get(env, DATA_KEY)
        if isinstance(attached, Mapping):
            merged.update(attached)
        if data is not None:
            if not isinstance(data, Mapping):
                raise MalformedEnvironmentError(f"data is a {type(data).__name__}, not a mapping")
            merged.update(data)
        return merged
