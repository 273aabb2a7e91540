"""
티어별 내레이션 생성 파이프라인

POI의 출처 발췌문(백과사전/여행 가이드)으로 세 단계 오디오 가이드 스크립트를 생성한다.

주요 기능:
- 버전별 프롬프트 세트 지원 (prompts/content_generation/)
- 1차: brief 단독 생성 → 2차: detailed / complete 동시 생성 (brief 발췌를 맥락으로 사용)
- 티어별 발췌문 길이 제한으로 프롬프트 크기 제어
- complete 티어 끝에 출처 표기(credits) 추가
- 티어 단위 오류 격리 (한 티어 실패가 다른 티어를 막지 않음)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from poi_guide.clients.completion import CompletionClient
from poi_guide.errors import CompletionError
from poi_guide.models import TIERS, ContentMapping, PoiInput, SourceExcerpt, Tier
from poi_guide.utils.concurrency import settle_all
from poi_guide.utils.prompt_loader import PromptSet, load_prompt_set

logger = logging.getLogger(__name__)

NO_BRIEF_PLACEHOLDER = "(no introduction available)"
NO_SOURCE_PLACEHOLDER = "(no reference material available; rely on well-established general knowledge)"


def _truncate(text: str, limit: int) -> str:
    text = (text or "").strip()
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def build_source_text(sources: List[SourceExcerpt], parameters: Dict[str, Any]) -> str:
    """
    출처 발췌문을 티어별 길이 제한에 맞춰 프롬프트용 텍스트로 만든다.

    첫 번째 출처의 본문은 extract_limit, 나머지 출처의 본문은 secondary_extract_limit,
    See/Do 섹션은 section_limit으로 자른다. Do 섹션은 include_do_section일 때만 포함한다.
    """
    extract_limit = int(parameters.get("extract_limit", 3000))
    secondary_limit = int(parameters.get("secondary_extract_limit", extract_limit))
    section_limit = int(parameters.get("section_limit", extract_limit))
    include_do = bool(parameters.get("include_do_section", True))

    lines = []
    for index, source in enumerate(sources):
        limit = extract_limit if index == 0 else secondary_limit
        if source.extract:
            lines.append(f"{source.source}: {_truncate(source.extract, limit)}")
        if source.see_section:
            lines.append(f"{source.source} (See): {_truncate(source.see_section, section_limit)}")
        if include_do and source.do_section:
            lines.append(f"{source.source} (Do): {_truncate(source.do_section, section_limit)}")

    return "\n".join(lines) if lines else NO_SOURCE_PLACEHOLDER


def generate_credits(poi: PoiInput) -> str:
    """출처 표기 블록. 표기할 출처가 없으면 빈 문자열."""
    lines = [
        f'{source.source}: "{source.title}" - {source.url}'
        for source in poi.sources
        if source.title or source.url
    ]
    if not lines:
        return ""
    return "\n".join(["Information provided by:"] + lines)


@dataclass
class TieredContent:
    """세 티어의 생성 결과 (실패한 티어는 None + errors에 사유)"""
    texts: Dict[Tier, Optional[str]] = field(default_factory=lambda: {t: None for t in TIERS})
    errors: Dict[Tier, str] = field(default_factory=dict)
    credits: str = ""

    def mappings(self) -> List[ContentMapping]:
        return [ContentMapping(tier, text) for tier, text in self.texts.items() if text]


class ContentGenerator:
    """
    티어별 내레이션 생성기

    Args:
        completion: Completion 클라이언트
        prompt_version: 프롬프트 세트 버전 (기본값: "default")
        prompts: 주입할 PromptSet (지정 시 prompt_version 무시)
    """

    def __init__(
        self,
        completion: CompletionClient,
        prompt_version: str = "default",
        prompts: Optional[PromptSet] = None,
    ):
        self.completion = completion
        self.prompts = prompts or load_prompt_set(prompt_version, pipeline_type="content_generation")

    async def generate_tier(
        self,
        tier: Tier,
        poi: PoiInput,
        brief_text: Optional[str] = None,
    ) -> str:
        """
        한 티어의 내레이션을 생성합니다.

        Args:
            tier: 생성할 티어
            poi: 대상 POI
            brief_text: brief 티어 결과 (detailed/complete의 맥락, 없으면 자리표시 문구)

        Returns:
            str: 내레이션 (complete 티어는 출처 표기 포함)

        Raises:
            CompletionError: 서비스 호출 실패 또는 빈 응답
        """
        template = self.prompts.get(tier.value)
        params = template.parameters

        brief_excerpt = NO_BRIEF_PLACEHOLDER
        if tier != Tier.BRIEF and brief_text:
            brief_excerpt = _truncate(brief_text, int(params.get("brief_excerpt_limit", 300)))

        user_prompt = template.format_user_prompt(
            name=poi.name,
            address=poi.formatted_address or "unknown address",
            source_text=build_source_text(poi.sources, params),
            brief_excerpt=brief_excerpt,
        )

        logger.info(f"📝 {tier.value} 내레이션 생성 시작: {poi.name}")
        text = await self.completion.complete(
            template.system_prompt,
            user_prompt,
            max_tokens=template.max_tokens,
            temperature=template.temperature,
        )
        text = text.strip()
        if not text:
            raise CompletionError(f"{tier.value} 티어 응답이 비어 있습니다.")

        if tier == Tier.COMPLETE:
            credits = generate_credits(poi)
            if credits:
                text = f"{text}\n\n{credits}"

        logger.info(f"✅ {tier.value} 내레이션 생성 완료 ({len(text)} 문자)")
        return text

    async def _produce(
        self,
        tier: Tier,
        poi: PoiInput,
        brief_text: Optional[str],
        content: TieredContent,
    ) -> Optional[str]:
        try:
            text = await self.generate_tier(tier, poi, brief_text)
        except Exception as e:
            logger.warning(f"⚠️ {tier.value} 티어 생성 실패: {e}")
            content.errors[tier] = str(e)
            return None
        content.texts[tier] = text
        return text

    async def generate(
        self,
        poi: PoiInput,
        on_text: Optional[Callable[[ContentMapping], Awaitable[None]]] = None,
    ) -> TieredContent:
        """
        세 티어를 두 단계(brief → detailed/complete 동시)로 생성합니다.

        Args:
            poi: 대상 POI
            on_text: 티어 텍스트가 확정되는 즉시 호출되는 콜백 (예: 음성 합성).
                brief 콜백은 2차 생성과 동시에 실행된다.

        Returns:
            TieredContent: 티어별 텍스트와 실패 사유

        Raises:
            Exception: on_text 콜백이 낸 예외 (모든 작업이 끝난 뒤 첫 번째 것)
        """
        content = TieredContent(credits=generate_credits(poi))

        brief_text = await self._produce(Tier.BRIEF, poi, None, content)

        async def second_wave(tier: Tier) -> None:
            text = await self._produce(tier, poi, brief_text, content)
            if text and on_text is not None:
                await on_text(ContentMapping(tier, text))

        jobs = []
        if brief_text and on_text is not None:
            jobs.append(on_text(ContentMapping(Tier.BRIEF, brief_text)))
        jobs.extend(second_wave(tier) for tier in (Tier.DETAILED, Tier.COMPLETE))

        for outcome in await settle_all(jobs):
            if not outcome.ok:
                raise outcome.error

        return content
