"""
유틸리티 함수 모듈
"""

import pprint
from typing import Any


def inspect_value(value: Any, width: int = 100) -> str:
    """리포트 본문에 표시할 값의 문자열 표현 (삽입 순서 유지)"""
    if isinstance(value, str):
        return value
    return pprint.pformat(value, width=width, sort_dicts=False)


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - len(suffix), 0)] + suffix


def insert_string_into_html(html_content: str, placeholder: str, string_to_insert: str) -> str:
    """
    placeholder 를 이용하여 HTML 템플릿에 문자열 삽입

    Args:
        html_content: 업데이트 할 html content
        placeholder: placeholder
        string_to_insert: 삽입할 내용

    Returns:
        업데이트 된 html content (placeholder 가 없으면 그대로 반환)
    """
    placeholder_start = html_content.find(placeholder)
    if placeholder_start == -1:
        return html_content

    placeholder_end = placeholder_start + len(placeholder)
    return html_content[:placeholder_start] + string_to_insert + html_content[placeholder_end:]
