"""
오디오 생성 및 저장 파이프라인

내레이션 텍스트를 TTS로 음성 변환하고 오브젝트 스토리지에 업로드한다.

주요 기능:
- 요청당 글자 수 제한에 맞춘 청크 분할 및 청크별 동시 합성
- 일부 청크 실패 시 건너뛰고 성공한 청크만 순서대로 연결 (전부 실패 시에만 오류)
- 결정적 저장 경로: <place_id>/<language>/<tier>_audio_<epoch-ms>.<ext>
- 저장 경로만 반환 (원본 바이트는 반환하지 않음), 재생용 서명 URL은 별도 발급
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from poi_guide.clients.speech import SpeechClient
from poi_guide.clients.storage import ObjectStore
from poi_guide.errors import AllChunksFailedError
from poi_guide.models import ContentMapping, Tier
from poi_guide.utils.audio import CONTENT_TYPES, concat_audio
from poi_guide.utils.chunker import split_text_into_chunks
from poi_guide.utils.concurrency import settle_all
from poi_guide.utils.path_sanitizer import audio_object_path

logger = logging.getLogger(__name__)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class AudioSynthesizer:
    """
    Args:
        speech: TTS 클라이언트 (audio_format, max_chars 제공)
        store: 오브젝트 스토리지
        language: 저장 경로에 들어갈 언어 코드 (기본값: "en")
        clock: epoch 밀리초를 반환하는 함수 (테스트용)
    """

    def __init__(
        self,
        speech: SpeechClient,
        store: ObjectStore,
        language: str = "en",
        clock: Optional[Callable[[], int]] = None,
    ):
        self.speech = speech
        self.store = store
        self.language = language
        self._clock = clock or _epoch_ms

    async def synthesize(self, text: str, voice: str) -> bytes:
        """
        텍스트를 음성으로 변환합니다.

        Args:
            text: 내레이션 텍스트
            voice: TTS 음성 이름

        Returns:
            bytes: 성공한 청크를 순서대로 연결한 오디오

        Raises:
            AllChunksFailedError: 모든 청크의 합성이 실패한 경우
        """
        chunks = split_text_into_chunks(text, self.speech.max_chars)
        total = len(chunks)
        if total > 1:
            logger.info(
                f"텍스트가 {self.speech.max_chars}자 제한을 초과하여 {total}개 청크로 분할 "
                f"(총 {len(text)}자)"
            )

        settled = await settle_all(self.speech.synthesize(chunk, voice) for chunk in chunks)

        buffers: List[bytes] = []
        for index, outcome in enumerate(settled, start=1):
            if outcome.ok and outcome.value:
                buffers.append(outcome.value)
            else:
                reason = outcome.error or "빈 오디오 응답"
                logger.warning(f"⚠️ 청크 {index}/{total} 음성 합성 실패, 건너뜀: {reason}")

        if not buffers:
            raise AllChunksFailedError(total)

        if len(buffers) < total:
            logger.warning(f"일부 청크만 합성됨: {len(buffers)}/{total}")

        return concat_audio(buffers, self.speech.audio_format)

    async def synthesize_and_store(
        self,
        mapping: ContentMapping,
        *,
        place_id: str,
        voice: str,
    ) -> str:
        """
        음성 합성 후 스토리지에 업로드합니다.

        Args:
            mapping: 티어와 내레이션 텍스트
            place_id: 외부 장소 ID (저장 경로 첫 구간)
            voice: TTS 음성 이름

        Returns:
            str: 저장 경로 (URL이 아님)

        Raises:
            AllChunksFailedError: 모든 청크의 합성이 실패한 경우
            StorageError: 업로드 실패
        """
        tier = mapping.tier
        audio = await self.synthesize(mapping.text, voice)

        extension = self.speech.audio_format
        path = audio_object_path(place_id, self.language, tier.value, extension, self._clock())
        await self.store.upload(path, audio, CONTENT_TYPES.get(extension, "application/octet-stream"))
        logger.info(f"🎵 {tier.value} 오디오 저장 완료: {path}")
        return path

    async def signed_urls(
        self,
        audio_paths: Dict[Tier, Optional[str]],
        expires_in: int,
    ) -> Dict[Tier, Optional[str]]:
        """저장 경로별로 기한부 재생 URL을 만든다. 경로가 없는 티어는 None."""
        urls: Dict[Tier, Optional[str]] = {}
        for tier, path in audio_paths.items():
            urls[tier] = await self.store.signed_url(path, expires_in) if path else None
        return urls
