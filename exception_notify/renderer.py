"""
리포트 렌더링 모듈

ExceptionReport 를 채널 설정에 따라 제목/텍스트 본문/HTML 본문/헤더로 변환합니다.
"""

import html
import os
from dataclasses import dataclass, field
from email.message import Message
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import format_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .config import EmailFormat, NotifierConfig, Section, get_settings
from .errors import RenderFailure
from .filters import FILTERED, SESSION_ID_KEY
from .logger import get_logger
from .report import ExceptionReport, SectionResult, thaw
from .utils import insert_string_into_html, inspect_value, truncate

logger = get_logger(__name__)

DEFAULT_TEMPLATE_PATH = os.path.join(os.path.dirname(__file__), "templates", "exception_notification.html")

RULE = "-------------------------------"

_REQUEST_FIELDS = (
    ("URL", "url"),
    ("HTTP Method", "method"),
    ("IP address", "remote_ip"),
    ("User agent", "user_agent"),
    ("Protocol", "protocol"),
)


@dataclass
class RenderedMessage:
    """전송 계층에 넘겨지는 최종 메시지"""

    subject: str
    text_body: str
    sender: str
    recipients: List[str]
    email_format: EmailFormat = EmailFormat.PLAIN
    html_body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    attachments: List[Any] = field(default_factory=list)
    delivery_settings: Mapping[str, Any] = field(default_factory=dict)
    report: Optional[ExceptionReport] = None

    @property
    def content_type(self) -> str:
        if self.email_format is EmailFormat.HTML:
            return "multipart/alternative"
        return "text/plain; charset=UTF-8"

    def to_mime(self) -> Message:
        """
        표준 라이브러리 MIME 메시지로 변환

        HTML 형식이면 텍스트 본문과 HTML 본문을 모두 담은 multipart/alternative 를 만듭니다.
        """
        if self.email_format is EmailFormat.HTML:
            message = MIMEMultipart("alternative")
            message.attach(MIMEText(self.text_body, "plain", "utf-8"))
            message.attach(MIMEText(self.html_body or "", "html", "utf-8"))
        else:
            message = MIMEText(self.text_body, "plain", "utf-8")

        message["Subject"] = self.subject
        message["From"] = self.sender
        message["To"] = ", ".join(self.recipients)
        if self.report is not None:
            message["Date"] = format_datetime(self.report.timestamp)
        for name, value in self.headers.items():
            del message[name]
            message[name] = value
        return message

    def as_string(self) -> str:
        return self.to_mime().as_string()


class ReportRenderer:
    """
    리포트를 채널별 메시지로 렌더링하는 클래스

    텍스트 본문 섹션 순서:
        타임스탬프, 추출 경고, Backtrace, Request, Session, Parameters, Environment, Data,
        그리고 설정된 사용자 정의 섹션 (등록 순서)
    요청 정보가 없는 백그라운드 리포트는 Backtrace, Data, background_sections 만 렌더링합니다.
    """

    def __init__(self, template_path: Optional[str] = None):
        self.template_path = template_path or DEFAULT_TEMPLATE_PATH
        self._template: Optional[str] = None

    def render(self, report: ExceptionReport, config: NotifierConfig) -> RenderedMessage:
        sections = self.build_sections(report, config)
        html_body = None
        if config.email_format is EmailFormat.HTML:
            html_body = self.render_html(report, sections)

        return RenderedMessage(
            subject=self.subject(report, config),
            text_body=self.render_text(report, sections),
            html_body=html_body,
            sender=config.sender_address,
            recipients=list(config.exception_recipients),
            email_format=config.email_format,
            headers={**get_settings().DEFAULT_HEADERS, **config.custom_headers},
            attachments=[],
            delivery_settings=dict(config.transport_settings),
            report=report,
        )

    @staticmethod
    def subject(report: ExceptionReport, config: NotifierConfig) -> str:
        prefix = config.email_prefix
        if not config.verbose_subject:
            return f"{prefix}# ({report.exception_name})"
        message = truncate(" ".join(report.message.split()), config.subject_message_limit)
        return f'{prefix}({report.exception_name}) "{message}"'

    @staticmethod
    def headline(report: ExceptionReport) -> str:
        path = report.request_metadata.get("path")
        location = f" in {path}" if path else ""
        return f"A {report.exception_name} occurred{location}"

    def build_sections(self, report: ExceptionReport, config: NotifierConfig) -> List[Tuple[str, List[str]]]:
        """렌더링할 (제목, 줄 목록) 섹션 목록 생성"""
        sections = [("Backtrace", list(report.backtrace) or ["(no backtrace captured)"])]

        if report.is_background:
            custom = config.background_sections
        else:
            custom = config.sections
            sections.append(("Request", self._request_lines(report)))
            sections.append(("Session", self._session_lines(report)))
            sections.append(("Parameters", [inspect_value(thaw(report.parameters))]))
            sections.append(("Environment", self._environment_lines(report)))

        if report.custom_data:
            sections.append(("Data", [f"* data: {inspect_value(thaw(report.custom_data))}"]))

        for section in custom:
            sections.append((section.title, self._custom_lines(section, report)))
        return sections

    @staticmethod
    def _request_lines(report: ExceptionReport) -> List[str]:
        metadata = report.request_metadata
        return [f"* {label:<11}: {metadata[key]}" for label, key in _REQUEST_FIELDS if key in metadata]

    @staticmethod
    def _session_lines(report: ExceptionReport) -> List[str]:
        data = thaw(report.session_data)
        session_id = data.pop(SESSION_ID_KEY, None)
        if report.is_secure:
            session_id = FILTERED
        return [f"* session id: {session_id}", f"* data: {inspect_value(data)}"]

    @staticmethod
    def _environment_lines(report: ExceptionReport) -> List[str]:
        environment = report.environment
        if not environment:
            return []
        width = max(len(key) for key in environment)
        return [f"* {key:<{width}} : {inspect_value(thaw(value))}" for key, value in environment.items()]

    @staticmethod
    def _custom_lines(section: Section, report: ExceptionReport) -> List[str]:
        def build() -> List[str]:
            content = section.render(report)
            if isinstance(content, str):
                return content.splitlines()
            return [str(line) for line in content]

        result = SectionResult.capture(section.title, build, [])
        return result.value if result.ok else [result.warning]

    def render_text(self, report: ExceptionReport, sections: Iterable[Tuple[str, List[str]]]) -> str:
        lines = [f"{self.headline(report)}:", ""]
        lines.append(f"  {report.message}")
        for cause in report.cause_chain:
            lines.append(f"  Caused by {cause.exception_class}: {cause.message}")
        lines.extend(["", f"Timestamp : {report.timestamp.isoformat()}", ""])
        lines.extend(report.extraction_warnings)

        for title, content in sections:
            lines.extend(["", RULE, f"{title}:", RULE, ""])
            for entry in content:
                lines.extend(f"  {line}" for line in entry.splitlines() or [""])
        return "\n".join(lines) + "\n"

    def render_html(self, report: ExceptionReport, sections: Iterable[Tuple[str, List[str]]]) -> str:
        template = self._load_template()

        section_html = "\n".join(
            f"<h2>{html.escape(title)}</h2>\n<pre>{html.escape(chr(10).join(content))}</pre>" for title, content in sections
        )
        warnings_html = "\n".join(
            f'<p class="warning">{html.escape(warning)}</p>' for warning in report.extraction_warnings
        )
        headline = html.escape(f"{self.headline(report)}: {report.message}")

        # 뒤쪽 placeholder 부터 치환해 삽입된 내용이 다른 placeholder 로 해석되지 않게 함
        template = insert_string_into_html(template, "{{ sections }}", section_html)
        template = insert_string_into_html(template, "{{ warnings }}", warnings_html)
        template = insert_string_into_html(template, "{{ timestamp }}", html.escape(report.timestamp.isoformat()))
        template = insert_string_into_html(template, "{{ headline }}", headline)
        template = insert_string_into_html(template, "{{ title }}", html.escape(report.exception_name))
        return template

    def _load_template(self) -> str:
        if self._template is None:
            try:
                with open(self.template_path, "r", encoding="utf-8") as f:
                    self._template = f.read()
            except OSError as e:
                logger.error(f"Failed to read notification template {self.template_path}: {e}")
                raise RenderFailure(
                    f"Notification template not available: {self.template_path}", extra={"path": self.template_path}
                ) from e
        return self._template
