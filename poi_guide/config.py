"""
환경 설정 로더

.env 파일과 환경변수에서 API 키, 저장소, 모델 설정을 읽어온다.
서비스 클라이언트는 이 설정을 받아 명시적으로 생성된다 (모듈 전역 클라이언트 없음).
"""

import os
from typing import Optional

from dotenv import load_dotenv

# 환경변수 로드
load_dotenv()

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///outputs/poi_guide.db"

# TTS 제공자별 기본 모델/음성
DEFAULT_TTS_MODELS = {
    "openai": "tts-1",
    "gemini": "gemini-2.5-flash-preview-tts",
}
DEFAULT_TTS_VOICES = {
    "openai": "nova",
    "gemini": "Zephyr",
}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} 환경변수는 정수여야 합니다: {value!r}")


class Settings:
    """파이프라인 실행 설정"""

    def __init__(
        self,
        *,
        openai_api_key: Optional[str] = None,
        gemini_api_key: Optional[str] = None,
        database_url: str = DEFAULT_DATABASE_URL,
        supabase_url: Optional[str] = None,
        supabase_service_role_key: Optional[str] = None,
        audio_bucket: str = "audio-guides",
        storage_backend: str = "supabase",
        local_storage_dir: str = "outputs/audio",
        completion_model: str = "gpt-4o-mini",
        tts_provider: str = "openai",
        tts_model: str = "tts-1",
        tts_voice: str = "nova",
        tts_max_chars: int = 4000,
        audio_language: str = "en",
        signed_url_ttl: int = 60 * 60 * 24,
        max_retries: int = 3,
        prompt_version: str = "default",
    ):
        self.openai_api_key = openai_api_key
        self.gemini_api_key = gemini_api_key
        self.database_url = database_url
        self.supabase_url = supabase_url
        self.supabase_service_role_key = supabase_service_role_key
        self.audio_bucket = audio_bucket
        self.storage_backend = storage_backend
        self.local_storage_dir = local_storage_dir
        self.completion_model = completion_model
        self.tts_provider = tts_provider
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.tts_max_chars = tts_max_chars
        self.audio_language = audio_language
        self.signed_url_ttl = signed_url_ttl
        self.max_retries = max_retries
        self.prompt_version = prompt_version

    @classmethod
    def from_env(cls) -> "Settings":
        """
        환경변수에서 설정을 생성한다.

        Returns:
            Settings: 환경변수 값이 반영된 설정 객체

        Raises:
            ValueError: 정수형 환경변수의 값이 올바르지 않을 경우
        """
        tts_provider = os.getenv("TTS_PROVIDER", "openai").lower()
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
            audio_bucket=os.getenv("AUDIO_BUCKET", "audio-guides"),
            storage_backend=os.getenv("STORAGE_BACKEND", "supabase").lower(),
            local_storage_dir=os.getenv("LOCAL_STORAGE_DIR", "outputs/audio"),
            completion_model=os.getenv("COMPLETION_MODEL", "gpt-4o-mini"),
            tts_provider=tts_provider,
            tts_model=os.getenv("TTS_MODEL") or DEFAULT_TTS_MODELS.get(tts_provider, "tts-1"),
            tts_voice=os.getenv("TTS_VOICE") or DEFAULT_TTS_VOICES.get(tts_provider, "nova"),
            tts_max_chars=_env_int("TTS_MAX_CHARS", 4000),
            audio_language=os.getenv("AUDIO_LANGUAGE", "en"),
            signed_url_ttl=_env_int("SIGNED_URL_TTL", 60 * 60 * 24),
            max_retries=_env_int("MAX_RETRIES", 3),
            prompt_version=os.getenv("PROMPT_VERSION", "default"),
        )

    def require_openai_key(self) -> str:
        if not self.openai_api_key:
            raise ValueError(
                "OPENAI_API_KEY가 설정되지 않았습니다. "
                ".env 파일에 API 키를 추가해주세요."
            )
        return self.openai_api_key

    def require_gemini_key(self) -> str:
        if not self.gemini_api_key:
            raise ValueError(
                "GEMINI_API_KEY 환경변수가 설정되지 않았습니다.\n"
                ".env 파일에 API 키를 설정해주세요."
            )
        return self.gemini_api_key
