"""
TTS 요청용 텍스트 청크 분할기

음성 합성 서비스의 요청당 글자 수 제한을 넘지 않도록 내레이션 텍스트를 나눈다.
문단 → 문장 → 글자 단위 순으로 경계를 선호하며, 단위를 탐욕적으로 누적한다.
"""

import re
from typing import List

DEFAULT_MAX_CHARS = 4000

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.?!])\s+")


def _hard_split(sentence: str, max_chars: int) -> List[str]:
    return [sentence[i:i + max_chars] for i in range(0, len(sentence), max_chars)]


def split_text_into_chunks(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> List[str]:
    """
    텍스트를 max_chars 이하의 청크 리스트로 분할합니다.

    길이가 max_chars 이하이면 원문 그대로 하나의 청크로 반환한다.
    그렇지 않으면 빈 줄 기준 문단으로 나누고, 제한을 넘는 문단은 문장
    (`.`, `?`, `!` 뒤 공백) 단위로, 제한을 넘는 문장은 글자 단위로 자른다.

    Args:
        text: 분할할 내레이션 텍스트
        max_chars: 청크당 최대 글자 수 (합성 서비스의 요청 제한)

    Returns:
        List[str]: 순서가 보존된 청크 리스트 (각 청크 길이 <= max_chars)

    Raises:
        ValueError: max_chars가 0 이하일 경우

    Example:
        >>> split_text_into_chunks("Sentence one. Sentence two. Sentence three.", 30)
        ['Sentence one. Sentence two.', 'Sentence three.']
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars는 양수여야 합니다: {max_chars}")

    if len(text) <= max_chars:
        return [text]

    chunks: List[str] = []
    current = ""

    for paragraph in _PARAGRAPH_BREAK.split(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue

        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) <= max_chars:
            current = candidate
            continue

        if current:
            chunks.append(current)
            current = ""

        if len(paragraph) <= max_chars:
            current = paragraph
            continue

        # 문단 자체가 제한을 넘으면 문장 단위로 누적
        for sentence in _SENTENCE_BREAK.split(paragraph):
            if not sentence:
                continue

            candidate = f"{current} {sentence}" if current else sentence
            if len(candidate) <= max_chars:
                current = candidate
                continue

            if current:
                chunks.append(current)
                current = ""

            if len(sentence) <= max_chars:
                current = sentence
            else:
                chunks.extend(_hard_split(sentence, max_chars))

    if current:
        chunks.append(current)

    return chunks
