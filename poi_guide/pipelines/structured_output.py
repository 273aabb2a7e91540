"""
LLM 구조화 출력 파서

JSON 모드 응답은 형태가 자주 어긋난다 (코드 펜스, 래퍼 객체, 설명 문장 등).
key_facts는 JSON 객체로, trivia는 문자열 리스트로 복구한다.

trivia 파서 체인 (앞에서부터 처음으로 비어 있지 않은 결과를 채택):
1. strict_array   - 최상위가 문자열 배열
2. wrapper_key    - 객체 안의 문자열 배열 ("trivia" 키 우선)
3. string_leaves  - 페이로드의 모든 문자열 리프 재귀 수집
4. bracketed_list - 원문에서 첫 번째 [...] 구간 정규식 추출
5. empty          - 빈 리스트
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)
_BRACKETED_LIST = re.compile(r"\[[^\[\]]*\]", re.DOTALL)
_QUOTED_STRING = re.compile(r'"((?:[^"\\]|\\.)*)"', re.DOTALL)

_WRAPPER_KEYS = ("trivia", "items", "facts", "data", "results")

# JSON 디코딩 실패 표시
_UNPARSED = object()


@dataclass
class ParsedList:
    items: List[str] = field(default_factory=list)
    strategy: str = "empty"


def strip_code_fences(raw: str) -> str:
    text = (raw or "").strip()
    match = _CODE_FENCE.match(text)
    return match.group(1).strip() if match else text


def _decode(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return _UNPARSED


def _clean(items: Sequence[Any]) -> List[str]:
    return [item.strip() for item in items if isinstance(item, str) and item.strip()]


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(v, str) for v in value)


def _strict_array(payload: Any, text: str) -> Optional[List[str]]:
    if _is_string_list(payload):
        return _clean(payload)
    return None


def _wrapper_key(payload: Any, text: str) -> Optional[List[str]]:
    if not isinstance(payload, dict):
        return None
    for key in _WRAPPER_KEYS:
        if _is_string_list(payload.get(key)):
            return _clean(payload[key])
    for value in payload.values():
        if _is_string_list(value):
            return _clean(value)
    return None


def _collect_leaves(value: Any, out: List[str]) -> None:
    if isinstance(value, str):
        out.append(value)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_leaves(item, out)
    elif isinstance(value, list):
        for item in value:
            _collect_leaves(item, out)


def _string_leaves(payload: Any, text: str) -> Optional[List[str]]:
    if not isinstance(payload, (dict, list)):
        return None
    leaves: List[str] = []
    _collect_leaves(payload, leaves)
    return _clean(leaves) or None


def _bracketed_list(payload: Any, text: str) -> Optional[List[str]]:
    match = _BRACKETED_LIST.search(text)
    if not match:
        return None
    fragment = match.group(0)
    decoded = _decode(fragment)
    if isinstance(decoded, list):
        return _clean(decoded) or None
    # JSON으로 읽히지 않는 목록은 따옴표 문자열만 추출
    items = []
    for quoted in _QUOTED_STRING.findall(fragment):
        decoded_item = _decode(f'"{quoted}"')
        items.append(decoded_item if isinstance(decoded_item, str) else quoted)
    return _clean(items) or None


_TRIVIA_PARSERS: Tuple[Tuple[str, Callable[[Any, str], Optional[List[str]]]], ...] = (
    ("strict_array", _strict_array),
    ("wrapper_key", _wrapper_key),
    ("string_leaves", _string_leaves),
    ("bracketed_list", _bracketed_list),
)


def parse_trivia(raw: Optional[str], limit: Optional[int] = None) -> ParsedList:
    """
    모델 응답에서 trivia 문자열 리스트를 복구합니다.

    Args:
        raw: 모델의 원본 응답 텍스트
        limit: 최대 항목 수 (None이면 제한 없음)

    Returns:
        ParsedList: 항목과 채택된 전략 이름. 모든 전략이 실패하면 빈 리스트와 "empty".

    Example:
        >>> parse_trivia('{"trivia": ["a", "b"]}')
        ParsedList(items=['a', 'b'], strategy='wrapper_key')
    """
    text = strip_code_fences(raw or "")
    payload = _decode(text)

    for name, parser in _TRIVIA_PARSERS:
        items = parser(payload, text)
        if items:
            if limit is not None:
                items = items[:limit]
            if name not in ("strict_array", "wrapper_key"):
                logger.warning(f"trivia 응답 형식 불일치, '{name}' 전략으로 복구 ({len(items)}개)")
            return ParsedList(items=items, strategy=name)

    logger.warning("trivia 응답에서 항목을 찾지 못해 빈 리스트로 저장합니다.")
    return ParsedList()


def parse_key_facts(raw: Optional[str]) -> Dict[str, Any]:
    """
    key_facts 응답을 JSON 객체로 파싱합니다. 실패하면 빈 객체를 반환합니다.

    코드 펜스 제거 → 전체 JSON 파싱 → 첫 '{'부터 마지막 '}'까지 구간 파싱 순으로 시도한다.
    """
    text = strip_code_fences(raw or "")
    payload = _decode(text)
    if isinstance(payload, dict):
        return payload

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        payload = _decode(text[start:end + 1])
        if isinstance(payload, dict):
            return payload

    logger.warning("key_facts 응답을 JSON 객체로 파싱하지 못해 빈 객체로 저장합니다.")
    return {}


def to_array_literal(items: Sequence[str]) -> str:
    """
    문자열 리스트를 PostgreSQL 배열 리터럴 텍스트로 직렬화합니다.

    Example:
        >>> to_array_literal(['a', 'say "hi"'])
        '{"a","say \\\\"hi\\\\""}'
    """
    escaped = []
    for item in items:
        value = item.replace("\\", "\\\\").replace('"', '\\"')
        escaped.append(f'"{value}"')
    return "{" + ",".join(escaped) + "}"


def parse_array_literal(text: Optional[str]) -> List[str]:
    """
    PostgreSQL 배열 리터럴 텍스트를 문자열 리스트로 역직렬화합니다.

    Raises:
        ValueError: 중괄호로 감싸지지 않은 텍스트
    """
    if text is None:
        return []
    text = text.strip()
    if not (text.startswith("{") and text.endswith("}")):
        raise ValueError(f"배열 리터럴 형식이 아닙니다: {text[:50]!r}")

    body = text[1:-1]
    items: List[str] = []
    i = 0
    while i < len(body):
        char = body[i]
        if char == "," or char.isspace():
            i += 1
            continue

        if char == '"':
            i += 1
            buffer = []
            while i < len(body):
                current = body[i]
                if current == "\\" and i + 1 < len(body):
                    buffer.append(body[i + 1])
                    i += 2
                    continue
                if current == '"':
                    i += 1
                    break
                buffer.append(current)
                i += 1
            items.append("".join(buffer))
        else:
            end = body.find(",", i)
            if end == -1:
                end = len(body)
            value = body[i:end].strip()
            if value.upper() != "NULL":
                items.append(value)
            i = end

    return items
