"""
콘솔에 예외 리포트를 출력하는 핸들러
"""

import sys
from typing import Optional

from ..config import NotifierConfig
from ..renderer import RenderedMessage
from .base import BaseHandler


class ConsoleHandler(BaseHandler):
    """
    콘솔(터미널)에 예외 리포트를 출력하는 핸들러
    """

    COLORS = {
        "RESET": "\033[0m",
        "RED": "\033[31m",
        "BOLD": "\033[1m",
    }

    def __init__(self, config: Optional[NotifierConfig] = None, output=None, use_colors: Optional[bool] = None, **options):
        """
        콘솔 핸들러 초기화

        Args:
            config: 채널 설정
            output: 출력 스트림 (기본값: sys.stderr)
            use_colors: 색상 사용 여부 (기본값: 자동 감지)
            **options: NotifierConfig 필드
        """
        super().__init__(config, **options)
        self.output = output or sys.stderr

        if use_colors is None:
            self.use_colors = hasattr(self.output, "isatty") and self.output.isatty()
        else:
            self.use_colors = use_colors

    def deliver(self, message: RenderedMessage) -> None:
        if self.use_colors:
            bold, red, reset = self.COLORS["BOLD"], self.COLORS["RED"], self.COLORS["RESET"]
        else:
            bold = red = reset = ""

        print(f"\n{bold}{red}===== EXCEPTION ====={reset}", file=self.output)
        print(f"{bold}{message.subject}{reset}\n", file=self.output)
        print(message.text_body, file=self.output)
        print(f"{bold}{red}====================={reset}\n", file=self.output)
        self.output.flush()
