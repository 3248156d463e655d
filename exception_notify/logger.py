"""
로깅 모듈

패키지 전체에서 사용하는 로거와 포매터를 제공합니다.
"""

import logging
import logging.handlers
import os
import sys
from typing import Optional, Union

ROOT_LOGGER_NAME = "exception_notify"


class CustomFormatter(logging.Formatter):
    """
    커스텀 로그 포매터

    터미널 출력일 때 로그 레벨에 색상을 입힙니다.
    """

    COLORS = {
        "RESET": "\033[0m",
        "RED": "\033[31m",
        "GREEN": "\033[32m",
        "YELLOW": "\033[33m",
        "BLUE": "\033[34m",
        "BOLD": "\033[1m",
    }

    LEVEL_COLORS = {
        logging.DEBUG: COLORS["BLUE"],
        logging.INFO: COLORS["GREEN"],
        logging.WARNING: COLORS["YELLOW"],
        logging.ERROR: COLORS["RED"],
        logging.CRITICAL: COLORS["RED"] + COLORS["BOLD"],
    }

    def __init__(self, fmt=None, datefmt=None, style="%", validate=True, use_colors: Optional[bool] = None):
        super().__init__(fmt, datefmt, style, validate)
        if use_colors is None:
            use_colors = sys.stderr.isatty()
        self.use_colors = use_colors

    def format(self, record):
        message = super().format(record)

        # 로그 레벨 부분만 색상 적용
        if self.use_colors:
            color = self.LEVEL_COLORS.get(record.levelno, self.COLORS["RESET"])
            levelname_pos = message.find(record.levelname)
            if levelname_pos != -1:
                levelname_end = levelname_pos + len(record.levelname)
                message = (
                    message[:levelname_pos]
                    + color
                    + message[levelname_pos:levelname_end]
                    + self.COLORS["RESET"]
                    + message[levelname_end:]
                )

        return message


def setup_logger(
    level: Optional[Union[int, str]] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    use_console_handler: bool = True,
) -> logging.Logger:
    """
    패키지 루트 로거 설정

    Args:
        level: 로그 레벨 (None일 경우 설정에서 가져옴)
        log_format: 로그 포맷
        log_file: 로그 파일 경로 (지정 시 RotatingFileHandler 추가)
        use_console_handler: 콘솔 출력 사용 여부

    Returns:
        설정된 루트 로거
    """
    from .config import get_settings

    settings = get_settings()
    level = level if level is not None else settings.LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    log_format = log_format or settings.LOG_FORMAT
    log_file = log_file or settings.LOG_FILE

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    if use_console_handler:
        console = logging.StreamHandler()
        console.setFormatter(CustomFormatter(log_format))
        root.addHandler(console)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(log_format))
        root.addHandler(file_handler)

    return root


def get_logger(name: str) -> logging.Logger:
    """
    로거 가져오기

    패키지 밖의 이름이 주어지면 패키지 루트 로거의 하위 로거로 만듭니다.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
