"""
POI / 지식 저장소

주요 기능:
- 외부 장소 ID(place_id) 기준 조회 및 최소 레코드 생성
- 티어별 내레이션/오디오 경로 갱신
- 지식 행 upsert (poi_id 충돌 시 전체 교체)
- 데이터베이스 오류를 RepositoryError로, 유니크 위반을 DuplicatePoiError로 변환
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from poi_guide.db.tables import Base, Poi, PoiKnowledge
from poi_guide.errors import DuplicatePoiError, RepositoryError
from poi_guide.models import (
    TEXT_SECTIONS,
    TIERS,
    KnowledgeRecord,
    PoiInput,
    PoiRecord,
    Tier,
)
from poi_guide.pipelines.structured_output import parse_array_literal, to_array_literal

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_poi_record(row: Poi) -> PoiRecord:
    return PoiRecord(
        id=row.id,
        place_id=row.place_id,
        name=row.name,
        formatted_address=row.formatted_address or "",
        location=dict(row.location or {}),
        types=list(row.types or []),
        transcripts={tier: getattr(row, f"{tier.value}_transcript") for tier in TIERS},
        audio_paths={tier: getattr(row, f"{tier.value}_audio_path") for tier in TIERS},
        audio_generated_at=row.audio_generated_at,
    )


def _to_knowledge_record(row: PoiKnowledge) -> KnowledgeRecord:
    try:
        trivia = parse_array_literal(row.interesting_trivia)
    except ValueError:
        logger.warning(f"trivia 배열 리터럴 파싱 실패 (poi_id={row.poi_id}), 빈 리스트로 대체")
        trivia = []
    return KnowledgeRecord(
        poi_id=row.poi_id,
        sections={section: getattr(row, section) for section in TEXT_SECTIONS},
        key_facts=dict(row.key_facts or {}),
        trivia=trivia,
        sources=list(row.sources or []),
        last_updated=row.last_updated,
    )


class PoiRepository:
    """POI 저장소 인터페이스"""

    async def get_by_place_id(self, place_id: str) -> Optional[PoiRecord]:
        raise NotImplementedError

    async def get_poi(self, poi_id: str) -> Optional[PoiRecord]:
        raise NotImplementedError

    async def insert_poi(self, poi: PoiInput) -> PoiRecord:
        """최소 레코드 생성. place_id가 이미 있으면 DuplicatePoiError."""
        raise NotImplementedError

    async def upsert_poi_audio(
        self,
        poi_id: str,
        transcripts: Dict[Tier, Optional[str]],
        audio_paths: Dict[Tier, Optional[str]],
        audio_generated_at: Optional[datetime],
    ) -> None:
        raise NotImplementedError

    async def get_knowledge(self, poi_id: str) -> Optional[KnowledgeRecord]:
        raise NotImplementedError

    async def upsert_knowledge(self, record: KnowledgeRecord) -> KnowledgeRecord:
        raise NotImplementedError


class SqlPoiRepository(PoiRepository):
    """
    SQLAlchemy asyncio 기반 구현 (PostgreSQL: asyncpg, SQLite: aiosqlite)

    Example:
        >>> repo = SqlPoiRepository.from_url("sqlite+aiosqlite:///outputs/poi_guide.db")
        >>> await repo.create_schema()
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SqlPoiRepository":
        return cls(create_async_engine(database_url, echo=echo))

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            raise RepositoryError(f"저장소 접근 실패: {e}") from e

    def _insert(self, table):
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            return pg_insert(table)
        if dialect == "sqlite":
            return sqlite_insert(table)
        raise RepositoryError(f"upsert를 지원하지 않는 데이터베이스입니다: {dialect}")

    async def get_by_place_id(self, place_id: str) -> Optional[PoiRecord]:
        async with self._session() as session:
            row = await session.scalar(select(Poi).where(Poi.place_id == place_id))
            return _to_poi_record(row) if row else None

    async def get_poi(self, poi_id: str) -> Optional[PoiRecord]:
        async with self._session() as session:
            row = await session.get(Poi, poi_id)
            return _to_poi_record(row) if row else None

    async def insert_poi(self, poi: PoiInput) -> PoiRecord:
        row = Poi(
            id=str(uuid.uuid4()),
            place_id=poi.place_id,
            name=poi.name,
            formatted_address=poi.formatted_address,
            location=dict(poi.location),
            types=list(poi.types),
            audio_generated_at=None,
            last_updated_at=_utcnow(),
        )
        async with self._session() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicatePoiError(poi.place_id) from e
        return _to_poi_record(row)

    async def upsert_poi_audio(self, poi_id, transcripts, audio_paths, audio_generated_at) -> None:
        values = {"last_updated_at": _utcnow(), "audio_generated_at": audio_generated_at}
        for tier in TIERS:
            values[f"{tier.value}_transcript"] = transcripts.get(tier)
            values[f"{tier.value}_audio_path"] = audio_paths.get(tier)

        async with self._session() as session:
            result = await session.execute(update(Poi).where(Poi.id == poi_id).values(**values))
            await session.commit()
        # 행은 identity 단계에서 항상 먼저 생성된다
        if result.rowcount == 0:
            raise RepositoryError(f"갱신할 POI가 없습니다: {poi_id}")

    async def get_knowledge(self, poi_id: str) -> Optional[KnowledgeRecord]:
        async with self._session() as session:
            row = await session.get(PoiKnowledge, poi_id)
            return _to_knowledge_record(row) if row else None

    async def upsert_knowledge(self, record: KnowledgeRecord) -> KnowledgeRecord:
        last_updated = record.last_updated or _utcnow()
        values = {
            "poi_id": record.poi_id,
            **{section: record.sections.get(section) for section in TEXT_SECTIONS},
            "key_facts": record.key_facts,
            "interesting_trivia": to_array_literal(record.trivia),
            "sources": record.sources,
            "last_updated": last_updated,
        }
        stmt = self._insert(PoiKnowledge).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PoiKnowledge.poi_id],
            set_={key: stmt.excluded[key] for key in values if key != "poi_id"},
        )

        async with self._session() as session:
            await session.execute(stmt)
            await session.commit()

        record.last_updated = last_updated
        return record
