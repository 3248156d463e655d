"""
민감 정보 필터링 모듈

세션, 요청 파라미터, 환경 정보 등 중첩된 구조에서 민감한 키의 값을 가립니다.
"""

from typing import Any, Iterable, Mapping

FILTERED = "[FILTERED]"

SESSION_ID_KEY = "session_id"


class FilterPolicy:
    """
    민감한 키를 구조적으로 가리는 필터

    키 이름은 대소문자를 구분하지 않고 정확히 일치할 때만 가려지며,
    중첩 깊이와 상관없이 동일하게 적용됩니다. 입력 구조는 변경하지 않고 복사본을 반환합니다.
    """

    def __init__(self, sensitive_keys: Iterable[str] = ()):
        self.sensitive_keys = frozenset(str(key).lower() for key in sensitive_keys)

    def is_sensitive(self, key: Any) -> bool:
        return isinstance(key, str) and key.lower() in self.sensitive_keys

    def redact(self, structure: Any) -> Any:
        """
        중첩 구조를 재귀적으로 순회하며 민감한 값을 FILTERED 로 교체

        Args:
            structure: 매핑/시퀀스/리프 값

        Returns:
            가려진 복사본 (리프 값은 그대로 반환)
        """
        if isinstance(structure, Mapping):
            return {
                key: FILTERED if self.is_sensitive(key) else self.redact(value) for key, value in structure.items()
            }
        if isinstance(structure, list):
            return [self.redact(item) for item in structure]
        if isinstance(structure, tuple):
            return tuple(self.redact(item) for item in structure)
        return structure

    def redact_session(self, session: Any, secure: bool = False) -> dict:
        """
        세션 데이터 필터링

        보안 연결로 들어온 요청이면 sensitive_keys 와 무관하게 세션 ID를 항상 가립니다.
        """
        redacted = self.redact(session) if isinstance(session, Mapping) else {}
        if secure:
            redacted[SESSION_ID_KEY] = FILTERED
        return redacted


def redact(structure: Any, sensitive_keys: Iterable[str]) -> Any:
    return FilterPolicy(sensitive_keys).redact(structure)
