"""
공통 유틸리티

- chunker: TTS 요청 크기 제한에 맞춘 텍스트 분할
- concurrency: settle-all fan-out 헬퍼
- prompt_loader: YAML 프롬프트 세트 로더
- path_sanitizer: 스토리지 경로 생성
- audio: WAV/MP3 버퍼 처리
"""

from .chunker import split_text_into_chunks
from .concurrency import Settled, settle_all

__all__ = ["split_text_into_chunks", "Settled", "settle_all"]
