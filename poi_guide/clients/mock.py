"""
dry_run 모드용 목업 클라이언트

API 호출 없이 파이프라인 전체를 오프라인으로 실행할 수 있게 한다.
"""

import json
import logging

from poi_guide.clients.completion import CompletionClient
from poi_guide.clients.speech import SpeechClient
from poi_guide.utils.audio import DUMMY_MP3_BYTES

logger = logging.getLogger(__name__)


class MockCompletionClient(CompletionClient):
    """고정 템플릿 텍스트를 반환하는 Completion 클라이언트"""

    async def complete(self, system, prompt, *, max_tokens=500, temperature=0.7) -> str:
        logger.info("🧪 DRY RUN 모드: 고정 템플릿 내레이션 반환")
        first_line = next((line.strip() for line in prompt.splitlines() if line.strip()), "")
        return (
            "Welcome! This is a placeholder narration generated in dry-run mode.\n\n"
            f"Request: {first_line[:200]}\n\n"
            "No model was called, so the content here is only a structural sample."
        )

    async def complete_json(self, system, prompt, *, max_tokens=500, temperature=0.7) -> str:
        logger.info("🧪 DRY RUN 모드: 고정 JSON 응답 반환")
        if "trivia" in prompt.lower():
            return json.dumps({
                "trivia": [f"Dry-run trivia item {i}." for i in range(1, 9)]
            })
        return json.dumps({"type": "placeholder", "mode": "dry_run"})


class MockSpeechClient(SpeechClient):
    """더미 MP3 바이트를 반환하는 TTS 클라이언트"""
    audio_format = "mp3"

    def __init__(self, max_chars: int = 4000):
        self.max_chars = max_chars

    async def synthesize(self, text: str, voice: str) -> bytes:
        logger.info(f"🧪 DRY RUN 모드: 더미 오디오 생성 ({len(text)} 글자)")
        return DUMMY_MP3_BYTES
