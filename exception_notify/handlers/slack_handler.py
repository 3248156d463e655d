"""
Slack 웹훅을 통한 예외 알림 핸들러
"""

from typing import Any, Dict, Optional

import requests

from ..config import NotifierConfig
from ..errors import ConfigurationError, DeliveryFailure
from ..logger import get_logger
from ..renderer import RenderedMessage
from .base import BaseHandler

logger = get_logger(__name__)

MAX_BODY_LENGTH = 3000


class SlackHandler(BaseHandler):
    """
    Slack 웹훅으로 예외 리포트를 보내는 핸들러
    """

    def __init__(
        self,
        config: Optional[NotifierConfig] = None,
        webhook_url: Optional[str] = None,
        username: str = "Exception Notifier",
        icon_emoji: str = ":warning:",
        timeout: float = 5.0,
        **options,
    ):
        """
        Slack 핸들러 초기화

        Args:
            config: 채널 설정
            webhook_url: Slack 웹훅 URL (None일 경우 transport_settings 의 webhook_url)
            username: Slack에 표시될 봇 이름
            icon_emoji: Slack에 표시될 봇 아이콘 이모지
            timeout: 요청 타임아웃 (초)
            **options: NotifierConfig 필드
        """
        super().__init__(config, **options)
        self.webhook_url = webhook_url or self.config.transport_settings.get("webhook_url")
        if not self.webhook_url:
            raise ConfigurationError("Slack webhook URL not configured")
        self.username = username
        self.icon_emoji = icon_emoji
        self.timeout = timeout

    def deliver(self, message: RenderedMessage) -> None:
        payload = self._create_slack_message(message)
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise DeliveryFailure(f"Error sending Slack notification: {e}", cause=e) from e

        if response.status_code != 200:
            raise DeliveryFailure(
                f"Slack API error: {response.status_code} {response.text}",
                extra={"status_code": response.status_code},
            )

    def _create_slack_message(self, message: RenderedMessage) -> Dict[str, Any]:
        """
        Slack 메시지 페이로드 생성

        Args:
            message: 렌더링된 메시지

        Returns:
            Slack API 메시지 페이로드
        """
        body = message.text_body
        if len(body) > MAX_BODY_LENGTH:
            body = body[:MAX_BODY_LENGTH] + "...\n[Report truncated]"

        fields = []
        report = message.report
        if report is not None:
            fields.append({"title": "Timestamp", "value": report.timestamp.isoformat(), "short": True})
            for key, title in (("url", "Request URL"), ("method", "Request Method"), ("remote_ip", "Client IP")):
                if key in report.request_metadata:
                    fields.append({"title": title, "value": report.request_metadata[key], "short": key != "url"})

        return {
            "username": self.username,
            "icon_emoji": self.icon_emoji,
            "text": f"⚠️ *{message.subject}*",
            "attachments": [
                {"color": "#ff0000", "fields": fields},
                {"color": "#7b0000", "title": "Report", "text": f"```{body}```", "mrkdwn_in": ["text"]},
            ],
        }
