"""
파이프라인 공통 데이터 모델

POI 입력, 생성 옵션, 저장 레코드, 티어/섹션/트랙별 실행 결과를 정의한다.
결과 객체의 to_dict()는 호출자(투어 UI)가 기대하는 camelCase 형태를 반환한다.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Tier(str, Enum):
    """내레이션 길이 티어 (1: brief, 2: detailed, 3: complete/in-depth)"""
    BRIEF = "brief"
    DETAILED = "detailed"
    COMPLETE = "complete"


TIERS = (Tier.BRIEF, Tier.DETAILED, Tier.COMPLETE)


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class PipelineState(str, Enum):
    """POI 단위 파이프라인 상태"""
    RESOLVING_IDENTITY = "resolving_identity"
    CHECKING_FRESHNESS = "checking_freshness"
    SKIPPED = "skipped"
    GENERATING = "generating"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


# 자유 텍스트 섹션 6개 + 구조화 섹션 2개 = 요청 8개
TEXT_SECTIONS = (
    "overview",
    "historical_context",
    "architectural_details",
    "cultural_significance",
    "practical_info",
    "visitor_experience",
)
STRUCTURED_SECTIONS = ("key_facts", "trivia")
KNOWLEDGE_SECTIONS = TEXT_SECTIONS + STRUCTURED_SECTIONS


def _empty_tier_map() -> Dict[Tier, Optional[str]]:
    return {tier: None for tier in TIERS}


def _tier_map_to_dict(values: Dict[Tier, Optional[str]]) -> Dict[str, Optional[str]]:
    return {tier.value: values.get(tier) for tier in TIERS}


@dataclass
class SourceExcerpt:
    """백과사전/여행 가이드 발췌문"""
    source: str
    title: str = ""
    url: Optional[str] = None
    extract: str = ""
    see_section: Optional[str] = None
    do_section: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"source": self.source, "title": self.title, "url": self.url}
        return data


@dataclass
class PoiInput:
    """
    파이프라인 입력 POI

    place_id는 상위 지도/검색 제공자의 외부 식별자이며 변경되지 않는다.
    """
    place_id: str
    name: str
    formatted_address: str = ""
    location: Dict[str, float] = field(default_factory=lambda: {"lat": 0.0, "lng": 0.0})
    types: List[str] = field(default_factory=list)
    sources: List[SourceExcerpt] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoiInput":
        """
        상위 호출자의 POI 페이로드를 파싱한다.

        중첩 형태({"place_id", "basic": {...}, "wikipedia": {...}, "wikivoyage": {...}})와
        평탄한 형태({"place_id", "name", ..., "sources": [...]})를 모두 지원한다.

        Args:
            data: POI 딕셔너리

        Returns:
            PoiInput: 파싱된 POI

        Raises:
            ValueError: place_id와 id가 모두 없을 경우
        """
        place_id = data.get("place_id") or data.get("id")
        if not place_id:
            raise ValueError("POI에 필수 ID 필드(place_id 또는 id)가 없습니다.")

        basic = data.get("basic") or {}
        geometry = data.get("geometry") or {}
        name = basic.get("name") or data.get("name") or str(place_id)
        address = (
            basic.get("formatted_address")
            or data.get("formatted_address")
            or data.get("vicinity")
            or ""
        )
        location = (
            basic.get("location")
            or data.get("location")
            or geometry.get("location")
            or {"lat": 0.0, "lng": 0.0}
        )
        types = list(basic.get("types") or data.get("types") or [])

        sources: List[SourceExcerpt] = []
        wikipedia = data.get("wikipedia")
        if wikipedia:
            sources.append(SourceExcerpt(
                source="Wikipedia",
                title=wikipedia.get("title", ""),
                url=wikipedia.get("url"),
                extract=wikipedia.get("extract", "") or "",
            ))
        wikivoyage = data.get("wikivoyage")
        if wikivoyage:
            sources.append(SourceExcerpt(
                source="Wikivoyage",
                title=wikivoyage.get("title", ""),
                url=wikivoyage.get("url"),
                extract=wikivoyage.get("extract", "") or "",
                see_section=wikivoyage.get("seeSection") or wikivoyage.get("see_section"),
                do_section=wikivoyage.get("doSection") or wikivoyage.get("do_section"),
            ))
        for item in data.get("sources") or []:
            sources.append(SourceExcerpt(
                source=item.get("source") or item.get("name") or "Source",
                title=item.get("title", ""),
                url=item.get("url"),
                extract=item.get("extract", "") or "",
                see_section=item.get("see_section"),
                do_section=item.get("do_section"),
            ))

        return cls(
            place_id=str(place_id),
            name=name,
            formatted_address=address,
            location=dict(location),
            types=types,
            sources=sources,
        )


@dataclass
class GenerationOptions:
    """호출 단위 생성 옵션"""
    audio: bool = True
    knowledge: bool = True
    force: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GenerationOptions":
        data = data or {}
        return cls(
            audio=bool(data.get("audio", True)),
            knowledge=bool(data.get("knowledge", True)),
            force=bool(data.get("force", False)),
        )


@dataclass
class ContentMapping:
    """티어 라벨과 내레이션 텍스트의 쌍 (청크 분할/합성 입력)"""
    tier: Tier
    text: str


@dataclass
class PoiRecord:
    """저장소의 POI 행"""
    id: str
    place_id: str
    name: str
    formatted_address: str = ""
    location: Dict[str, float] = field(default_factory=dict)
    types: List[str] = field(default_factory=list)
    transcripts: Dict[Tier, Optional[str]] = field(default_factory=_empty_tier_map)
    audio_paths: Dict[Tier, Optional[str]] = field(default_factory=_empty_tier_map)
    audio_generated_at: Optional[datetime] = None


@dataclass
class KnowledgeRecord:
    """저장소의 POI 지식 행 (POI당 최대 1개)"""
    poi_id: str
    sections: Dict[str, Optional[str]] = field(default_factory=dict)
    key_facts: Dict[str, Any] = field(default_factory=dict)
    trivia: List[str] = field(default_factory=list)
    sources: List[Dict[str, Any]] = field(default_factory=list)
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            section: self.sections.get(section) for section in TEXT_SECTIONS
        }
        data["keyFacts"] = self.key_facts
        data["trivia"] = list(self.trivia)
        data["sources"] = list(self.sources)
        data["lastUpdated"] = self.last_updated.isoformat() if self.last_updated else None
        return data


@dataclass
class TierOutcome:
    tier: Tier
    text_status: Outcome = Outcome.SKIPPED
    audio_status: Outcome = Outcome.SKIPPED
    text: Optional[str] = None
    audio_path: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text_status.value,
            "audio": self.audio_status.value,
            "error": self.error,
        }


@dataclass
class AudioTrackResult:
    """오디오 트랙(티어별 텍스트 생성 → 합성 → 저장) 결과"""
    status: Outcome = Outcome.SKIPPED
    tiers: Dict[Tier, TierOutcome] = field(
        default_factory=lambda: {tier: TierOutcome(tier) for tier in TIERS}
    )
    error: Optional[str] = None

    @property
    def generated(self) -> bool:
        return any(o.audio_status == Outcome.SUCCESS for o in self.tiers.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "tiers": {tier.value: self.tiers[tier].to_dict() for tier in TIERS},
            "error": self.error,
        }


@dataclass
class SectionOutcome:
    section: str
    status: Outcome = Outcome.SKIPPED
    error: Optional[str] = None
    strategy: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status.value, "error": self.error}
        if self.strategy:
            data["strategy"] = self.strategy
        return data


@dataclass
class KnowledgeTrackResult:
    """지식 트랙(8개 섹션 병렬 생성) 결과"""
    status: Outcome = Outcome.SKIPPED
    sections: Dict[str, SectionOutcome] = field(
        default_factory=lambda: {s: SectionOutcome(s) for s in KNOWLEDGE_SECTIONS}
    )
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "sections": {s: o.to_dict() for s, o in self.sections.items()},
            "error": self.error,
        }


@dataclass
class PipelineResult:
    """POI 1개에 대한 오케스트레이터 결과"""
    place_id: str
    poi_id: Optional[str] = None
    state: PipelineState = PipelineState.DONE
    skipped_marker: bool = False
    audio: AudioTrackResult = field(default_factory=AudioTrackResult)
    knowledge_track: KnowledgeTrackResult = field(default_factory=KnowledgeTrackResult)
    transcripts: Dict[Tier, Optional[str]] = field(default_factory=_empty_tier_map)
    audio_paths: Dict[Tier, Optional[str]] = field(default_factory=_empty_tier_map)
    knowledge: Optional[KnowledgeRecord] = None

    @property
    def audio_generated(self) -> bool:
        return self.audio.status == Outcome.SUCCESS and self.audio.generated

    @property
    def knowledge_generated(self) -> bool:
        return self.knowledge_track.status == Outcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        if self.skipped_marker:
            return {
                "success": True,
                "poiId": self.poi_id,
                "placeId": self.place_id,
                "state": self.state.value,
                "skippedMarker": True,
            }
        return {
            "success": True,
            "poiId": self.poi_id,
            "placeId": self.place_id,
            "state": self.state.value,
            "audioGenerated": self.audio_generated,
            "knowledgeGenerated": self.knowledge_generated,
            "transcripts": _tier_map_to_dict(self.transcripts),
            "audioPaths": _tier_map_to_dict(self.audio_paths),
            "knowledge": self.knowledge.to_dict() if self.knowledge else None,
            "tracks": {
                "audio": self.audio.to_dict(),
                "knowledge": self.knowledge_track.to_dict(),
            },
        }


@dataclass
class BatchItemResult:
    poi_id: str
    success: bool
    result: Optional[PipelineResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"poiId": self.poi_id, "success": self.success}
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class BatchResult:
    """투어 단위 배치 결과"""
    items: List[BatchItemResult] = field(default_factory=list)
    duration: float = 0.0
    # 타임아웃으로 보고됐지만 아직 실행 중인 작업
    pending: List[Any] = field(default_factory=list, repr=False)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def successful(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "durationSeconds": round(self.duration, 2),
            "results": [item.to_dict() for item in self.items],
        }
