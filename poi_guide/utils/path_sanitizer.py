"""
오브젝트 스토리지 경로 생성을 위한 정제 유틸리티.

오디오 트랙이 모든 티어에서 동일한 규칙으로 저장 경로를 만들 수 있도록 중앙집중식으로 관리한다.
"""

from __future__ import annotations

# 경로 구분자로 오인되거나 URL/파일 시스템에서 허용되지 않는 문자를 모두 제거한다.
_INVALID_PATH_CHARS = '<>:"/\\|?*#%'


def sanitize_path_segment(value: str) -> str:
    """스토리지 경로의 한 구간으로 쓸 수 있도록 문자열을 정제한다.

    Args:
        value: 장소 ID, 언어 코드 등 원본 문자열

    Returns:
        앞뒤 공백을 제거하고, 공백은 밑줄로 바꾸고, 허용되지 않는 특수문자를 제거한 문자열

    Raises:
        ValueError: 정제 후 빈 문자열이 되는 경우
    """
    sanitized = value.strip()
    for char in _INVALID_PATH_CHARS:
        sanitized = sanitized.replace(char, "")
    sanitized = "_".join(sanitized.split())
    if not sanitized:
        raise ValueError(f"경로 구간으로 사용할 수 없는 값입니다: {value!r}")
    return sanitized


def audio_object_path(
    place_id: str,
    language: str,
    tier: str,
    extension: str,
    timestamp_ms: int,
) -> str:
    """오디오 파일의 스토리지 경로를 생성한다.

    형식: ``<place_id>/<language>/<tier>_audio_<epoch-ms>.<ext>``
    재생성 시 타임스탬프가 달라지므로 이전 파일과 충돌하지 않는다.
    """
    return (
        f"{sanitize_path_segment(place_id)}/{sanitize_path_segment(language)}/"
        f"{sanitize_path_segment(tier)}_audio_{timestamp_ms}.{extension.lstrip('.')}"
    )


__all__ = [
    "sanitize_path_segment",
    "audio_object_path",
]
