import pytest

from conftest import FIXED_NOW, InMemoryPoiRepository
from poi_guide.errors import IdentityResolutionError
from poi_guide.models import TIERS, GenerationOptions, KnowledgeRecord, PoiInput, Tier
from poi_guide.pipelines.freshness import FreshnessInspector
from poi_guide.pipelines.identity import IdentityResolver

POI = PoiInput(place_id="place-1", name="Trevi Fountain")


class TestIdentityResolver:
    async def test_creates_minimal_record_once(self):
        repository = InMemoryPoiRepository()
        resolver = IdentityResolver(repository)

        first = await resolver.resolve(POI)
        second = await resolver.resolve(POI)

        assert first.created is True
        assert second.created is False
        assert first.poi_id == second.poi_id
        assert repository.insert_calls == 1
        assert not second.has_audio

    async def test_duplicate_insert_race_reads_existing_row(self):
        repository = InMemoryPoiRepository(race_on_insert=True)
        identity = await IdentityResolver(repository).resolve(POI)

        assert identity.created is False
        assert identity.poi_id == next(iter(repository.pois))
        assert len(repository.pois) == 1

    async def test_unreachable_store_is_fatal(self):
        repository = InMemoryPoiRepository(fail_place_ids={"place-1"})

        with pytest.raises(IdentityResolutionError) as exc_info:
            await IdentityResolver(repository).resolve(POI)
        assert exc_info.value.stage == "identity"


async def _stored_poi(repository, complete=True):
    identity = await IdentityResolver(repository).resolve(POI)
    transcripts = {tier: f"{tier.value} text" for tier in TIERS}
    if not complete:
        transcripts[Tier.COMPLETE] = None
    paths = {tier: f"place-1/en/{tier.value}_audio_1.mp3" for tier in TIERS}
    await repository.upsert_poi_audio(identity.poi_id, transcripts, paths, FIXED_NOW)
    return identity.poi_id


class TestFreshnessInspector:
    async def test_new_poi_needs_everything(self):
        repository = InMemoryPoiRepository()
        identity = await IdentityResolver(repository).resolve(POI)
        report = await FreshnessInspector(repository).inspect(identity.poi_id, GenerationOptions())

        assert report.needs_audio and report.needs_knowledge
        assert not report.degraded

    async def test_complete_poi_needs_nothing(self):
        repository = InMemoryPoiRepository()
        poi_id = await _stored_poi(repository)
        await repository.upsert_knowledge(KnowledgeRecord(poi_id=poi_id))

        report = await FreshnessInspector(repository).inspect(poi_id, GenerationOptions())

        assert not report.needs_anything
        assert report.transcripts[Tier.BRIEF] == "brief text"
        assert report.knowledge is not None

    async def test_missing_tier_text_needs_audio(self):
        repository = InMemoryPoiRepository()
        poi_id = await _stored_poi(repository, complete=False)

        report = await FreshnessInspector(repository).inspect(poi_id, GenerationOptions())

        assert report.needs_audio

    async def test_force_regenerates(self):
        repository = InMemoryPoiRepository()
        poi_id = await _stored_poi(repository)
        await repository.upsert_knowledge(KnowledgeRecord(poi_id=poi_id))

        report = await FreshnessInspector(repository).inspect(poi_id, GenerationOptions(force=True))

        assert report.needs_audio and report.needs_knowledge

    async def test_disabled_tracks_are_never_needed(self):
        repository = InMemoryPoiRepository()
        options = GenerationOptions(audio=False, knowledge=False, force=True)

        report = await FreshnessInspector(repository).inspect("missing", options)

        assert not report.needs_anything

    async def test_lookup_failure_degrades_to_regeneration(self):
        repository = InMemoryPoiRepository(fail_reads=True)

        report = await FreshnessInspector(repository).inspect("poi-1", GenerationOptions())

        assert report.needs_audio and report.needs_knowledge
        assert report.degraded

    async def test_unexpected_lookup_error_degrades_to_regeneration(self):
        class BrokenRepository(InMemoryPoiRepository):
            async def get_poi(self, poi_id):
                raise KeyError(poi_id)

            async def get_knowledge(self, poi_id):
                raise RuntimeError("driver crashed")

        report = await FreshnessInspector(BrokenRepository()).inspect("poi-1", GenerationOptions())

        assert report.needs_audio and report.needs_knowledge
        assert report.degraded

    async def test_missing_audio_path_needs_audio(self):
        repository = InMemoryPoiRepository()
        poi_id = await _stored_poi(repository)
        repository.pois[poi_id].audio_paths[Tier.DETAILED] = None

        report = await FreshnessInspector(repository).inspect(poi_id, GenerationOptions(knowledge=False))

        assert report.needs_audio
