"""
관계형 저장소 테이블 정의 (SQLAlchemy 2.x 선언형)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Poi(Base):
    __tablename__ = "pois"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # 외부 장소 ID (유니크 제약이 동시 생성 경합의 기준)
    place_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    formatted_address: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Dict[str, float]] = mapped_column(JSON, default=dict)
    types: Mapped[List[str]] = mapped_column(JSON, default=list)

    brief_transcript: Mapped[Optional[str]] = mapped_column(Text)
    detailed_transcript: Mapped[Optional[str]] = mapped_column(Text)
    complete_transcript: Mapped[Optional[str]] = mapped_column(Text)

    brief_audio_path: Mapped[Optional[str]] = mapped_column(Text)
    detailed_audio_path: Mapped[Optional[str]] = mapped_column(Text)
    complete_audio_path: Mapped[Optional[str]] = mapped_column(Text)

    audio_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class PoiKnowledge(Base):
    __tablename__ = "poi_knowledge"

    poi_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pois.id", ondelete="CASCADE"), primary_key=True
    )

    overview: Mapped[Optional[str]] = mapped_column(Text)
    historical_context: Mapped[Optional[str]] = mapped_column(Text)
    architectural_details: Mapped[Optional[str]] = mapped_column(Text)
    cultural_significance: Mapped[Optional[str]] = mapped_column(Text)
    practical_info: Mapped[Optional[str]] = mapped_column(Text)
    visitor_experience: Mapped[Optional[str]] = mapped_column(Text)

    key_facts: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    # PostgreSQL 배열 리터럴 텍스트 ({"a","b"})
    interesting_trivia: Mapped[Optional[str]] = mapped_column(Text)
    sources: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)

    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
