from typing import Any, Dict, Iterable, Mapping, Optional, Union

from fastapi import FastAPI, Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .config import DeliveryMode
from .errors import ExceptionNotifyError
from .extractor import DATA_KEY, OPTIONS_KEY, PARAMS_KEY, SESSION_KEY
from .ignore import IgnorePolicy
from .logger import get_logger
from .notifier import ExceptionNotifier

logger = get_logger(__name__)

_CONTENT_HEADERS = {"content-type": "CONTENT_TYPE", "content-length": "CONTENT_LENGTH"}


def build_environment(request: Request, options: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Starlette 요청에서 예외 리포트용 환경 맵을 만듭니다."""
    scope = request.scope
    env: Dict[str, Any] = {
        "REQUEST_METHOD": request.method,
        "SCRIPT_NAME": scope.get("root_path", ""),
        "PATH_INFO": scope.get("path", ""),
        "QUERY_STRING": scope.get("query_string", b"").decode("latin-1"),
        "SERVER_PROTOCOL": f"HTTP/{scope.get('http_version', '1.1')}",
        "wsgi.url_scheme": request.url.scheme,
    }

    server = scope.get("server")
    if server:
        env["SERVER_NAME"], env["SERVER_PORT"] = server[0], str(server[1])
    if request.client:
        env["REMOTE_ADDR"] = request.client.host
    if request.url.scheme == "https":
        env["HTTPS"] = "on"

    for name, value in request.headers.items():
        key = _CONTENT_HEADERS.get(name) or "HTTP_" + name.upper().replace("-", "_")
        env[key] = value

    env[PARAMS_KEY] = {**request.query_params, **request.path_params}
    if "session" in scope:
        env[SESSION_KEY] = dict(scope["session"])

    # 라우트에서 request.state 로 붙인 옵션/데이터 병합
    state_options = getattr(request.state, "exception_notify_options", None)
    merged_options = {**(options or {}), **(state_options or {})}
    if merged_options:
        env[OPTIONS_KEY] = merged_options
    state_data = getattr(request.state, "exception_notify_data", None)
    if state_data:
        env[DATA_KEY] = dict(state_data)
    return env


class ExceptionNotificationMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: FastAPI,
        notifier: ExceptionNotifier,
        ignore_crawlers: Optional[Iterable[str]] = None,
        options: Optional[Mapping[str, Any]] = None,
        excluding: Iterable[str] = (),
        mode: Optional[Union[DeliveryMode, str]] = None,
    ):
        super().__init__(app)
        self.notifier = notifier
        self.ignore_crawlers = list(ignore_crawlers or [])
        self.options = dict(options or {})
        self.excluding = list(excluding)
        self.mode = mode

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            env = build_environment(request, self.options)
            if IgnorePolicy.from_crawler(env, self.ignore_crawlers):
                logger.debug(f"Skipping notification for crawler request to {env['PATH_INFO']}")
            else:
                await run_in_threadpool(self._notify, exc, env)
            # 예외를 다시 발생시켜 FastAPI의 기본 예외 처리기가 처리하도록 함
            raise

    def _notify(self, exc: Exception, env: Dict[str, Any]) -> None:
        try:
            self.notifier.notify(exc, env=env, excluding=self.excluding, mode=self.mode)
        except ExceptionNotifyError as e:
            # 알림 실패로 애플리케이션 오류가 가려지지 않도록 함
            logger.exception(f"Error in ExceptionNotificationMiddleware: {e}")


def add_exception_notification(
    app: FastAPI,
    notifier: ExceptionNotifier,
    ignore_crawlers: Optional[Iterable[str]] = None,
    options: Optional[Mapping[str, Any]] = None,
    excluding: Iterable[str] = (),
    mode: Optional[Union[DeliveryMode, str]] = None,
) -> None:
    """
    FastAPI 애플리케이션에 예외 알림 미들웨어를 추가합니다.

    Args:
        app: FastAPI 애플리케이션 인스턴스
        notifier: 알림을 보낼 ExceptionNotifier
        ignore_crawlers: 알림을 보내지 않을 User-Agent 부분 문자열 목록
        options: 모든 요청에 적용할 채널 옵션
        excluding: 제외할 채널 이름
        mode: 전송 방식 (None이면 notifier 의 기본값)
    """
    app.add_middleware(
        ExceptionNotificationMiddleware,
        notifier=notifier,
        ignore_crawlers=ignore_crawlers,
        options=options,
        excluding=excluding,
        mode=mode,
    )
