"""
구조화 지식 생성 파이프라인

POI 하나에 대해 8개 섹션을 동시에 요청해 지식 시트를 만든다.

주요 기능:
- 자유 텍스트 6개 섹션 (overview ~ visitor_experience)
- key_facts: JSON 객체 모드 요청, 파싱 실패 시 빈 객체
- trivia: JSON 모드 요청, 파서 체인으로 복구 후 최대 12개
- 섹션 단위 오류 격리 (settle-all)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from poi_guide.clients.completion import CompletionClient
from poi_guide.models import (
    KNOWLEDGE_SECTIONS,
    TEXT_SECTIONS,
    KnowledgeRecord,
    Outcome,
    PoiInput,
    SectionOutcome,
)
from poi_guide.pipelines.content_gen import build_source_text
from poi_guide.pipelines.structured_output import parse_key_facts, parse_trivia
from poi_guide.utils.concurrency import settle_all
from poi_guide.utils.prompt_loader import PromptSet, load_prompt_set

logger = logging.getLogger(__name__)

MAX_TRIVIA = 12


@dataclass
class KnowledgeResult:
    sections: Dict[str, Optional[str]] = field(
        default_factory=lambda: {s: None for s in TEXT_SECTIONS}
    )
    key_facts: Dict[str, Any] = field(default_factory=dict)
    trivia: List[str] = field(default_factory=list)
    sources: List[Dict[str, Any]] = field(default_factory=list)
    outcomes: Dict[str, SectionOutcome] = field(
        default_factory=lambda: {s: SectionOutcome(s) for s in KNOWLEDGE_SECTIONS}
    )

    @property
    def succeeded(self) -> List[str]:
        return [s for s, o in self.outcomes.items() if o.status == Outcome.SUCCESS]

    @property
    def failed(self) -> List[str]:
        return [s for s, o in self.outcomes.items() if o.status == Outcome.FAILED]

    def to_record(self, poi_id: str, last_updated: Optional[datetime] = None) -> KnowledgeRecord:
        return KnowledgeRecord(
            poi_id=poi_id,
            sections=dict(self.sections),
            key_facts=dict(self.key_facts),
            trivia=list(self.trivia),
            sources=list(self.sources),
            last_updated=last_updated,
        )


class KnowledgeGenerator:
    def __init__(
        self,
        completion: CompletionClient,
        prompt_version: str = "default",
        prompts: Optional[PromptSet] = None,
    ):
        self.completion = completion
        self.prompts = prompts or load_prompt_set(prompt_version, pipeline_type="knowledge_generation")

    async def generate_section(self, section: str, poi: PoiInput) -> str:
        """섹션 하나를 요청하고 원본 응답 텍스트를 반환한다."""
        template = self.prompts.get(section)
        params = template.parameters
        limit = int(params.get("source_limit", 3000))
        user_prompt = template.format_user_prompt(
            name=poi.name,
            address=poi.formatted_address or "unknown address",
            types=", ".join(poi.types) or "unspecified",
            source_text=build_source_text(
                poi.sources,
                {"extract_limit": limit, "secondary_extract_limit": limit, "section_limit": limit},
            ),
        )

        request = self.completion.complete_json if template.json_mode else self.completion.complete
        return await request(
            template.system_prompt,
            user_prompt,
            max_tokens=template.max_tokens,
            temperature=template.temperature,
        )

    async def generate(self, poi: PoiInput) -> KnowledgeResult:
        """
        8개 섹션을 동시에 생성합니다.

        실패한 섹션은 비워 두고 outcomes에 사유를 기록한다. 예외를 올리지 않는다.
        """
        logger.info(f"📚 지식 시트 생성 시작: {poi.name} ({len(KNOWLEDGE_SECTIONS)}개 섹션)")
        result = KnowledgeResult(sources=[source.to_dict() for source in poi.sources])

        settled = await settle_all(
            [self.generate_section(section, poi) for section in KNOWLEDGE_SECTIONS]
        )

        for section, outcome in zip(KNOWLEDGE_SECTIONS, settled):
            section_outcome = result.outcomes[section]
            if not outcome.ok:
                section_outcome.status = Outcome.FAILED
                section_outcome.error = str(outcome.error)
                logger.warning(f"⚠️ 지식 섹션 '{section}' 생성 실패: {outcome.error}")
                continue

            raw = outcome.value or ""
            if section == "key_facts":
                result.key_facts = parse_key_facts(raw)
                section_outcome.strategy = "json_object" if result.key_facts else "empty"
            elif section == "trivia":
                parsed = parse_trivia(raw, limit=MAX_TRIVIA)
                result.trivia = parsed.items
                section_outcome.strategy = parsed.strategy
            else:
                text = raw.strip()
                if not text:
                    section_outcome.status = Outcome.FAILED
                    section_outcome.error = f"'{section}' 응답이 비어 있습니다."
                    logger.warning(f"⚠️ 지식 섹션 {section_outcome.error}")
                    continue
                result.sections[section] = text

            section_outcome.status = Outcome.SUCCESS

        if result.failed:
            logger.warning(
                f"지식 시트 부분 실패: {len(result.failed)}/{len(KNOWLEDGE_SECTIONS)}개 섹션 "
                f"({', '.join(result.failed)})"
            )
        else:
            logger.info(f"✅ 지식 시트 생성 완료: {poi.name}")
        return result
