"""
음성 합성(TTS) 클라이언트

주요 기능:
- OpenAI TTS (tts-1, MP3)
- Gemini TTS (PCM 응답을 WAV로 감싸서 반환)
- 재시도 로직 (네트워크 오류 / Rate Limit 대응)
"""

import logging
import mimetypes
from typing import List, Optional

import backoff
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import AsyncOpenAI

from poi_guide.errors import SpeechSynthesisError
from poi_guide.utils.audio import convert_to_wav

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 4000


class SpeechClient:
    """
    음성 합성 서비스 인터페이스

    Attributes:
        audio_format: 반환하는 오디오 형식 ("mp3" 또는 "wav")
        max_chars: 요청당 최대 글자 수
    """
    audio_format = "mp3"
    max_chars = DEFAULT_MAX_CHARS

    async def synthesize(self, text: str, voice: str) -> bytes:
        raise NotImplementedError


def _backoff_handlers(provider: str, max_retries: int):
    def on_backoff(details):
        logger.warning(
            f"⏳ {provider} TTS 지수 백오프 적용: {details['wait']:.2f}초 대기 중 "
            f"(재시도 {details['tries']}/{max_retries})"
        )

    def on_giveup(details):
        logger.error(f"❌ 최대 재시도 횟수 초과 ({max_retries}회): {provider} TTS 호출 포기")

    return on_backoff, on_giveup


class OpenAISpeechClient(SpeechClient):
    """OpenAI audio.speech 기반 MP3 합성"""
    audio_format = "mp3"

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: str = "tts-1",
        max_chars: int = DEFAULT_MAX_CHARS,
        max_retries: int = 3,
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None:
            if not api_key:
                raise ValueError(
                    "OPENAI_API_KEY가 설정되지 않았습니다. "
                    ".env 파일에 API 키를 추가해주세요."
                )
            client = AsyncOpenAI(api_key=api_key)
        self._client = client
        self.model = model
        self.max_chars = max_chars
        self.max_retries = max(1, max_retries)

    async def synthesize(self, text: str, voice: str) -> bytes:
        on_backoff, on_giveup = _backoff_handlers("OpenAI", self.max_retries)

        @backoff.on_exception(
            backoff.expo,
            (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError),
            max_tries=self.max_retries,
            max_value=30,
            on_backoff=on_backoff,
            on_giveup=on_giveup,
            jitter=backoff.full_jitter,
        )
        async def _call_api_with_backoff() -> bytes:
            response = await self._client.audio.speech.create(
                model=self.model,
                voice=voice,
                input=text,
                response_format="mp3",
            )
            return await response.aread()

        logger.info(f"🎤 OpenAI TTS 호출 ({len(text)} 글자, 음성: {voice})")
        try:
            audio = await _call_api_with_backoff()
        except openai.OpenAIError as e:
            raise SpeechSynthesisError(f"OpenAI TTS 생성 실패: {e}") from e

        if not audio:
            raise SpeechSynthesisError("API로부터 오디오 데이터를 받지 못했습니다.")
        return audio


class GeminiSpeechClient(SpeechClient):
    """
    Gemini TTS 기반 합성

    Gemini는 원시 PCM(audio/L16;rate=24000)을 반환하므로 WAV 헤더를 붙여 반환한다.
    """
    audio_format = "wav"

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: str = "gemini-2.5-flash-preview-tts",
        max_chars: int = DEFAULT_MAX_CHARS,
        max_retries: int = 8,
        max_wait: float = 60.0,
        client: Optional[genai.Client] = None,
    ):
        if client is None:
            if not api_key:
                raise ValueError(
                    "GEMINI_API_KEY 환경변수가 설정되지 않았습니다.\n"
                    ".env 파일에 API 키를 설정해주세요."
                )
            client = genai.Client(api_key=api_key)
        self._client = client
        self.model = model
        self.max_chars = max_chars
        self.max_retries = max(1, max_retries)
        self.max_wait = max_wait

    async def synthesize(self, text: str, voice: str) -> bytes:
        on_backoff, on_giveup = _backoff_handlers("Gemini", self.max_retries)

        config = types.GenerateContentConfig(
            temperature=1,
            response_modalities=["audio"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice)
                )
            ),
        )
        contents = [types.Content(role="user", parts=[types.Part.from_text(text=text)])]

        @backoff.on_exception(
            backoff.expo,
            (genai_errors.ServerError, genai_errors.ClientError),
            max_tries=self.max_retries,
            max_value=self.max_wait,
            giveup=lambda e: isinstance(e, genai_errors.ClientError) and getattr(e, "code", None) != 429,
            on_backoff=on_backoff,
            on_giveup=on_giveup,
            jitter=backoff.full_jitter,
        )
        async def _call_api_with_backoff():
            return await self._client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )

        logger.info(f"🎤 Gemini TTS 호출 ({len(text)} 글자, 음성: {voice})")
        try:
            response = await _call_api_with_backoff()
        except genai_errors.APIError as e:
            raise SpeechSynthesisError(f"Gemini TTS 생성 실패: {e}") from e

        return self._collect_audio(response)

    @staticmethod
    def _collect_audio(response) -> bytes:
        pcm_parts: List[bytes] = []
        encoded_parts: List[bytes] = []
        mime_type = "audio/L16;rate=24000"

        for candidate in response.candidates or []:
            if candidate.content is None or candidate.content.parts is None:
                continue
            for part in candidate.content.parts:
                inline_data = part.inline_data
                if not inline_data or not inline_data.data:
                    continue
                # 확장자를 추정할 수 없으면 원시 PCM
                if mimetypes.guess_extension(inline_data.mime_type or "") is None:
                    mime_type = inline_data.mime_type or mime_type
                    pcm_parts.append(inline_data.data)
                else:
                    encoded_parts.append(inline_data.data)

        if pcm_parts:
            return convert_to_wav(b"".join(pcm_parts), mime_type)
        if encoded_parts:
            return b"".join(encoded_parts)
        raise SpeechSynthesisError("API로부터 오디오 데이터를 받지 못했습니다.")
