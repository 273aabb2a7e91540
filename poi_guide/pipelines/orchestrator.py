"""
POI 단위 파이프라인 오케스트레이터

상태 전이:
    RESOLVING_IDENTITY → CHECKING_FRESHNESS → {SKIPPED | GENERATING} → PERSISTING → DONE
    RESOLVING_IDENTITY → FAILED (ID 확인 실패 시에만)

주요 기능:
- 경로 마커(출발/도착 지점) POI 즉시 건너뛰기
- 오디오 트랙과 지식 트랙을 독립된 두 작업으로 동시 실행
- 오디오 트랙 안에서 티어별 텍스트가 확정되는 즉시 해당 티어 합성 시작
- 성공한 결과만 기존 값 위에 병합하여 upsert (반복 실행 시 멱등)
- 트랙/티어/섹션별 success/failed/skipped 결과 보고
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from poi_guide.db.repository import PoiRepository
from poi_guide.errors import IdentityResolutionError, PipelineError, RepositoryError
from poi_guide.models import (
    TIERS,
    AudioTrackResult,
    ContentMapping,
    GenerationOptions,
    KnowledgeTrackResult,
    Outcome,
    PipelineResult,
    PipelineState,
    PoiInput,
    TierOutcome,
)
from poi_guide.pipelines.audio_gen import AudioSynthesizer
from poi_guide.pipelines.content_gen import ContentGenerator
from poi_guide.pipelines.freshness import FreshnessInspector, FreshnessReport
from poi_guide.pipelines.identity import IdentityResolver, ResolvedIdentity
from poi_guide.pipelines.knowledge_gen import KnowledgeGenerator, KnowledgeResult
from poi_guide.utils.concurrency import settle_all

logger = logging.getLogger(__name__)

MARKER_NAME_PHRASES = ("starting point", "end point", "return to start")
MARKER_TYPES = frozenset({"starting_point", "end_point", "return_to_start"})


def is_route_marker(poi: PoiInput) -> bool:
    """출발/도착 지점 같은 합성 경유지인지 이름 또는 타입 태그로 판단한다."""
    name = (poi.name or "").lower()
    if any(phrase in name for phrase in MARKER_NAME_PHRASES):
        return True
    return any(tag in MARKER_TYPES for tag in poi.types)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineOrchestrator:
    """
    POI 하나에 대한 전체 생성 파이프라인

    모든 협력 객체는 생성자에서 주입된다.

    Args:
        repository: POI/지식 저장소
        content_generator: 티어별 내레이션 생성기
        knowledge_generator: 지식 시트 생성기
        audio_synthesizer: 음성 합성 및 저장
        voice: TTS 음성 이름 (기본값: "nova")
        clock: 현재 시각 함수 (테스트용)
    """

    def __init__(
        self,
        repository: PoiRepository,
        content_generator: ContentGenerator,
        knowledge_generator: KnowledgeGenerator,
        audio_synthesizer: AudioSynthesizer,
        *,
        voice: str = "nova",
        identity_resolver: Optional[IdentityResolver] = None,
        freshness_inspector: Optional[FreshnessInspector] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.content_generator = content_generator
        self.knowledge_generator = knowledge_generator
        self.audio_synthesizer = audio_synthesizer
        self.voice = voice
        self.identity_resolver = identity_resolver or IdentityResolver(repository)
        self.freshness_inspector = freshness_inspector or FreshnessInspector(repository)
        self._now = clock or _utcnow

    @staticmethod
    def _enter(result: PipelineResult, state: PipelineState) -> None:
        result.state = state
        logger.info(f"[{result.place_id}] 상태 전이 → {state.value}")

    async def run(
        self,
        poi: PoiInput,
        options: Optional[GenerationOptions] = None,
    ) -> PipelineResult:
        """
        POI 하나를 처리합니다.

        Args:
            poi: 입력 POI
            options: 생성 옵션 (기본값: 오디오/지식 모두, force 없음)

        Returns:
            PipelineResult: 트랙/티어/섹션별 결과

        Raises:
            IdentityResolutionError: ID 확인 실패 (FAILED 상태 진입 후)
        """
        options = options or GenerationOptions()
        result = PipelineResult(place_id=poi.place_id)

        self._enter(result, PipelineState.RESOLVING_IDENTITY)
        try:
            identity = await self.identity_resolver.resolve(poi)
        except IdentityResolutionError as e:
            self._enter(result, PipelineState.FAILED)
            logger.error(f"❌ [{poi.place_id}] POI ID 확인 실패: {e}")
            raise
        result.poi_id = identity.poi_id

        if is_route_marker(poi):
            logger.info(f"⊘ [{poi.place_id}] 경로 마커 POI, 생성 건너뜀: {poi.name}")
            result.skipped_marker = True
            self._enter(result, PipelineState.SKIPPED)
            return result

        self._enter(result, PipelineState.CHECKING_FRESHNESS)
        report = await self.freshness_inspector.inspect(identity.poi_id, options)
        result.transcripts = dict(report.transcripts)
        result.audio_paths = dict(report.audio_paths)
        result.knowledge = report.knowledge

        if not report.needs_anything:
            logger.info(f"⊘ [{poi.place_id}] 기존 생성물 사용 (재생성 불필요)")
            self._enter(result, PipelineState.SKIPPED)
            return result

        self._enter(result, PipelineState.GENERATING)
        audio_track, knowledge_result = await self._generate(poi, report, result)

        self._enter(result, PipelineState.PERSISTING)
        await self._persist(identity, report, audio_track, knowledge_result, result)

        self._enter(result, PipelineState.DONE)
        logger.info(
            f"✅ [{poi.place_id}] 완료: 오디오={result.audio.status.value}, "
            f"지식={result.knowledge_track.status.value}"
        )
        return result

    async def run_safely(
        self,
        poi: PoiInput,
        options: Optional[GenerationOptions] = None,
    ) -> Dict[str, Any]:
        """run()과 같지만 치명적 오류를 {success: false, error} 형태로 반환한다."""
        try:
            result = await self.run(poi, options)
        except PipelineError as e:
            return {"success": False, "placeId": poi.place_id, "error": str(e)}
        return result.to_dict()

    async def _generate(self, poi: PoiInput, report: FreshnessReport, result: PipelineResult):
        """두 트랙을 동시에 실행한다. 한 트랙의 예외가 다른 트랙에 영향을 주지 않는다."""
        jobs = []
        if report.needs_audio:
            jobs.append(("audio", self._run_audio_track(poi)))
        if report.needs_knowledge:
            jobs.append(("knowledge", self.knowledge_generator.generate(poi)))

        settled = await settle_all(coro for _, coro in jobs)

        audio_track: Optional[AudioTrackResult] = None
        knowledge_result: Optional[KnowledgeResult] = None
        for (name, _), outcome in zip(jobs, settled):
            if name == "audio":
                if outcome.ok:
                    audio_track = outcome.value
                else:
                    logger.error(f"❌ [{poi.place_id}] 오디오 트랙 실패: {outcome.error}")
                    audio_track = AudioTrackResult(status=Outcome.FAILED, error=str(outcome.error))
                result.audio = audio_track
            else:
                if outcome.ok:
                    knowledge_result = outcome.value
                    result.knowledge_track = KnowledgeTrackResult(
                        status=Outcome.SUCCESS if knowledge_result.succeeded else Outcome.FAILED,
                        sections=dict(knowledge_result.outcomes),
                    )
                else:
                    logger.error(f"❌ [{poi.place_id}] 지식 트랙 실패: {outcome.error}")
                    result.knowledge_track = KnowledgeTrackResult(
                        status=Outcome.FAILED, error=str(outcome.error)
                    )

        return audio_track, knowledge_result

    async def _run_audio_track(self, poi: PoiInput) -> AudioTrackResult:
        """
        brief 텍스트 → {brief 오디오, detailed 텍스트 → 오디오, complete 텍스트 → 오디오}

        텍스트 순서는 ContentGenerator.generate가 정하고, 각 티어의 합성은
        해당 티어 텍스트가 확정되는 즉시 콜백으로 시작한다.
        """
        track = AudioTrackResult()

        async def synthesize(mapping: ContentMapping) -> None:
            await self._synthesize_tier(poi, track.tiers[mapping.tier], mapping)

        content = await self.content_generator.generate(poi, on_text=synthesize)

        for tier in TIERS:
            outcome = track.tiers[tier]
            text = content.texts[tier]
            if text:
                outcome.text_status = Outcome.SUCCESS
                outcome.text = text
            else:
                outcome.text_status = Outcome.FAILED
                outcome.audio_status = Outcome.SKIPPED
                outcome.error = content.errors.get(tier)

        if track.generated:
            track.status = Outcome.SUCCESS
        else:
            track.status = Outcome.FAILED
            track.error = "모든 티어의 오디오 생성에 실패했습니다."
        return track

    async def _synthesize_tier(
        self,
        poi: PoiInput,
        outcome: TierOutcome,
        mapping: ContentMapping,
    ) -> None:
        try:
            outcome.audio_path = await self.audio_synthesizer.synthesize_and_store(
                mapping,
                place_id=poi.place_id,
                voice=self.voice,
            )
        except Exception as e:
            outcome.audio_status = Outcome.FAILED
            outcome.error = str(e)
            logger.warning(f"⚠️ [{poi.place_id}] {outcome.tier.value} 오디오 생성 실패: {e}")
            return
        outcome.audio_status = Outcome.SUCCESS

    async def _persist(
        self,
        identity: ResolvedIdentity,
        report: FreshnessReport,
        audio_track: Optional[AudioTrackResult],
        knowledge_result: Optional[KnowledgeResult],
        result: PipelineResult,
    ) -> None:
        """
        성공한 티어/섹션만 저장한다.

        텍스트 생성에 실패한 티어는 기존 텍스트/경로를 유지한다. 텍스트만 새로 만들고
        오디오에 실패한 티어는 경로를 비워 다음 실행에서 재생성되게 한다. audio_generated_at은
        한 티어라도 오디오가 생성됐을 때만 갱신한다. 지식 행은 한 섹션이라도
        성공했을 때 통째로 교체한다.
        """
        now = self._now()

        if audio_track is not None:
            transcripts = dict(report.transcripts)
            audio_paths = dict(report.audio_paths)
            changed = False
            for tier in TIERS:
                outcome = audio_track.tiers[tier]
                if outcome.text_status == Outcome.SUCCESS:
                    transcripts[tier] = outcome.text
                    # 이전 오디오는 새 텍스트와 내용이 다르다
                    audio_paths[tier] = (
                        outcome.audio_path if outcome.audio_status == Outcome.SUCCESS else None
                    )
                    changed = True

            if changed:
                generated_at = now if audio_track.generated else identity.audio_generated_at
                try:
                    await self.repository.upsert_poi_audio(
                        identity.poi_id, transcripts, audio_paths, generated_at
                    )
                except (RepositoryError, OSError) as e:
                    logger.error(f"❌ [{identity.place_id}] 내레이션/오디오 저장 실패: {e}")
                    audio_track.status = Outcome.FAILED
                    audio_track.error = f"저장 실패: {e}"
                else:
                    result.transcripts = transcripts
                    result.audio_paths = audio_paths

        if knowledge_result is not None and knowledge_result.succeeded:
            record = knowledge_result.to_record(identity.poi_id, last_updated=now)
            try:
                result.knowledge = await self.repository.upsert_knowledge(record)
            except (RepositoryError, OSError) as e:
                logger.error(f"❌ [{identity.place_id}] 지식 저장 실패: {e}")
                result.knowledge_track.status = Outcome.FAILED
                result.knowledge_track.error = f"저장 실패: {e}"
