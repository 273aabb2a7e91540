"""
생성물 최신성(Freshness) 검사

이미 저장된 내레이션/오디오/지식을 조회해 다시 생성할 필요가 있는지 판단한다.
캐시 조회일 뿐이므로 조회 오류는 "모두 다시 생성"으로 처리하고 실패로 올리지 않는다.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from poi_guide.db.repository import PoiRepository
from poi_guide.models import (
    TIERS,
    GenerationOptions,
    KnowledgeRecord,
    PoiRecord,
    Tier,
)

logger = logging.getLogger(__name__)


def _empty() -> Dict[Tier, Optional[str]]:
    return {tier: None for tier in TIERS}


@dataclass
class FreshnessReport:
    transcripts: Dict[Tier, Optional[str]] = field(default_factory=_empty)
    audio_paths: Dict[Tier, Optional[str]] = field(default_factory=_empty)
    needs_audio: bool = False
    knowledge: Optional[KnowledgeRecord] = None
    needs_knowledge: bool = False
    degraded: bool = False

    @property
    def needs_anything(self) -> bool:
        return self.needs_audio or self.needs_knowledge


class FreshnessInspector:
    def __init__(self, repository: PoiRepository):
        self.repository = repository

    async def inspect(self, poi_id: str, options: GenerationOptions) -> FreshnessReport:
        """
        트랙별 재생성 필요 여부를 계산합니다.

        오디오: force, 오디오 미생성(audio_generated_at 없음), 티어 텍스트 또는 오디오 경로 누락 중 하나면 필요.
        지식: force 또는 지식 행이 없으면 필요.
        비활성화된 트랙은 항상 needs_* = False.
        """
        report = FreshnessReport()

        record: Optional[PoiRecord] = None
        poi_lookup_failed = False
        try:
            record = await self.repository.get_poi(poi_id)
        except Exception as e:
            poi_lookup_failed = True
            logger.warning(f"⚠️ POI 조회 실패, 오디오 트랙을 재생성 대상으로 처리: {e}")

        if record is not None:
            report.transcripts = dict(record.transcripts)
            report.audio_paths = dict(record.audio_paths)

        knowledge_lookup_failed = False
        try:
            report.knowledge = await self.repository.get_knowledge(poi_id)
        except Exception as e:
            knowledge_lookup_failed = True
            logger.warning(f"⚠️ 지식 조회 실패, 지식 트랙을 재생성 대상으로 처리: {e}")

        if options.audio:
            report.needs_audio = (
                options.force
                or record is None
                or record.audio_generated_at is None
                or any(not report.transcripts.get(tier) for tier in TIERS)
                or any(not report.audio_paths.get(tier) for tier in TIERS)
            )
            report.degraded = report.degraded or poi_lookup_failed

        if options.knowledge:
            report.needs_knowledge = options.force or report.knowledge is None
            report.degraded = report.degraded or knowledge_lookup_failed

        logger.info(
            f"Freshness 검사 결과 (poi_id={poi_id}): "
            f"needs_audio={report.needs_audio}, needs_knowledge={report.needs_knowledge}"
            + (" [degraded]" if report.degraded else "")
        )
        return report
