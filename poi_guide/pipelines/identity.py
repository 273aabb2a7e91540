"""
외부 장소 ID → 내부 POI ID 매핑

place_id로 조회하고, 없으면 최소 레코드를 생성한다 (insert-or-get).
동시 생성 경합으로 유니크 제약 위반이 나면 이미 존재하는 것으로 보고 재조회한다.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from poi_guide.db.repository import PoiRepository
from poi_guide.errors import DuplicatePoiError, IdentityResolutionError, RepositoryError
from poi_guide.models import PoiInput

logger = logging.getLogger(__name__)


@dataclass
class ResolvedIdentity:
    poi_id: str
    place_id: str
    audio_generated_at: Optional[datetime] = None
    created: bool = False

    @property
    def has_audio(self) -> bool:
        return self.audio_generated_at is not None


class IdentityResolver:
    def __init__(self, repository: PoiRepository):
        self.repository = repository

    async def resolve(self, poi: PoiInput) -> ResolvedIdentity:
        """
        POI의 내부 ID를 확정합니다.

        Args:
            poi: 파이프라인 입력 POI

        Returns:
            ResolvedIdentity: 내부 ID, 외부 ID, 오디오 생성 시각, 신규 생성 여부

        Raises:
            IdentityResolutionError: 저장소에 접근할 수 없을 경우
        """
        try:
            existing = await self.repository.get_by_place_id(poi.place_id)
            if existing is not None:
                return ResolvedIdentity(
                    poi_id=existing.id,
                    place_id=existing.place_id,
                    audio_generated_at=existing.audio_generated_at,
                )

            try:
                record = await self.repository.insert_poi(poi)
            except DuplicatePoiError:
                logger.info(f"동시 생성 경합 감지, 기존 레코드 재조회: {poi.place_id}")
                existing = await self.repository.get_by_place_id(poi.place_id)
                if existing is None:
                    raise IdentityResolutionError(
                        f"유니크 제약 위반 후 재조회 결과가 없습니다: {poi.place_id}"
                    )
                return ResolvedIdentity(
                    poi_id=existing.id,
                    place_id=existing.place_id,
                    audio_generated_at=existing.audio_generated_at,
                )

            logger.info(f"신규 POI 레코드 생성: {poi.name} ({poi.place_id} → {record.id})")
            return ResolvedIdentity(poi_id=record.id, place_id=record.place_id, created=True)

        except (RepositoryError, OSError) as e:
            raise IdentityResolutionError(f"POI ID 확인 실패 ({poi.place_id}): {e}") from e
