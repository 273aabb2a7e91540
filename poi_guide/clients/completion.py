"""
텍스트 생성(Completion) 클라이언트

OpenAI Chat Completions API를 비동기로 호출한다.
일시적 네트워크/Rate Limit 오류는 지수 백오프로 재시도하고,
최종 실패는 CompletionError로 변환한다.
"""

import logging
from typing import Optional

import backoff
import openai
from openai import AsyncOpenAI

from poi_guide.errors import CompletionError

logger = logging.getLogger(__name__)

# 재시도 대상 (인증/요청 형식 오류는 재시도하지 않음)
RETRYABLE_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class CompletionClient:
    """텍스트 생성 서비스 인터페이스"""

    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str:
        raise NotImplementedError

    async def complete_json(
        self,
        system: str,
        prompt: str,
        *,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str:
        """JSON 객체 모드로 생성한 원본 텍스트를 반환한다 (파싱은 호출자 책임)."""
        raise NotImplementedError


class OpenAICompletionClient(CompletionClient):
    """
    OpenAI Chat Completions 기반 구현

    Args:
        api_key: OpenAI API 키
        model: 모델명 (기본값: gpt-4o-mini)
        max_retries: 최대 시도 횟수 (기본값: 3)
        client: 주입할 AsyncOpenAI 인스턴스 (테스트용)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: str = "gpt-4o-mini",
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
        self.max_retries = max(1, max_retries)

    async def complete(self, system, prompt, *, max_tokens=500, temperature=0.7) -> str:
        return await self._create(system, prompt, max_tokens, temperature, json_mode=False)

    async def complete_json(self, system, prompt, *, max_tokens=500, temperature=0.7) -> str:
        return await self._create(system, prompt, max_tokens, temperature, json_mode=True)

    async def _create(
        self,
        system: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        json_mode: bool,
    ) -> str:
        max_retries = self.max_retries

        def on_backoff(details):
            logger.warning(
                f"⏳ Completion 재시도: {details['wait']:.2f}초 대기 중 "
                f"(시도 {details['tries']}/{max_retries})"
            )

        def on_giveup(details):
            logger.error(f"❌ 최대 재시도 횟수 초과 ({max_retries}회): Completion 호출 포기")

        @backoff.on_exception(
            backoff.expo,
            RETRYABLE_ERRORS,
            max_tries=max_retries,
            max_value=30,
            on_backoff=on_backoff,
            on_giveup=on_giveup,
            jitter=backoff.full_jitter,
        )
        async def _call_api_with_backoff():
            kwargs = {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            return await self._client.chat.completions.create(**kwargs)

        try:
            response = await _call_api_with_backoff()
        except openai.OpenAIError as e:
            raise CompletionError(f"LLM 호출 중 오류 발생: {e}") from e

        if not response.choices:
            return ""
        content = response.choices[0].message.content or ""
        logger.debug(f"LLM 응답 수신 완료 (길이: {len(content)} 문자, json_mode={json_mode})")
        return content
