import pytest

from conftest import (
    FIXED_NOW,
    FakeCompletionClient,
    FakeObjectStore,
    FakeSpeechClient,
    InMemoryPoiRepository,
    build_orchestrator,
)
from poi_guide.errors import IdentityResolutionError
from poi_guide.models import (
    KNOWLEDGE_SECTIONS,
    GenerationOptions,
    Outcome,
    PipelineState,
    PoiInput,
    Tier,
)
from poi_guide.pipelines.orchestrator import is_route_marker


async def test_full_run_generates_and_persists(orchestrator, repository, store, colosseum):
    result = await orchestrator.run(colosseum)
    data = result.to_dict()

    assert result.state == PipelineState.DONE
    assert data["success"] is True
    assert data["audioGenerated"] is True
    assert data["knowledgeGenerated"] is True
    assert data["transcripts"]["brief"] == "brief narration for Colosseum."
    assert all(data["audioPaths"][tier] for tier in ("brief", "detailed", "complete"))
    assert len(store.objects) == 3
    assert data["knowledge"]["trivia"] == ["fact one", "fact two"]

    record = repository.pois[result.poi_id]
    assert record.audio_generated_at == FIXED_NOW
    assert record.transcripts[Tier.COMPLETE].startswith("complete narration")
    assert repository.knowledge[result.poi_id].last_updated == FIXED_NOW


async def test_second_run_is_a_noop(orchestrator, repository, completion, speech, colosseum):
    first = (await orchestrator.run(colosseum)).to_dict()
    calls_after_first = (len(completion.calls), len(speech.calls))

    second_result = await orchestrator.run(colosseum)
    second = second_result.to_dict()

    assert second_result.state == PipelineState.SKIPPED
    assert (len(completion.calls), len(speech.calls)) == calls_after_first
    assert repository.audio_writes == 1
    assert repository.knowledge_writes == 1
    assert second["transcripts"] == first["transcripts"]
    assert second["audioPaths"] == first["audioPaths"]
    assert second["knowledge"] == first["knowledge"]
    assert second["audioGenerated"] is False


async def test_force_regenerates_everything(orchestrator, completion, colosseum):
    await orchestrator.run(colosseum)
    result = await orchestrator.run(colosseum, GenerationOptions(force=True))

    assert result.state == PipelineState.DONE
    assert len(completion.calls) == 2 * (3 + len(KNOWLEDGE_SECTIONS))


async def test_tier_two_failure_is_isolated(repository, speech, store, colosseum):
    completion = FakeCompletionClient(fail={"detailed"})
    orchestrator = build_orchestrator(repository, completion, speech, store)

    result = await orchestrator.run(colosseum)
    data = result.to_dict()

    assert data["success"] is True
    assert data["transcripts"]["brief"] is not None
    assert data["transcripts"]["detailed"] is None
    assert data["transcripts"]["complete"] is not None
    assert data["audioPaths"]["detailed"] is None
    assert data["audioGenerated"] is True
    tiers = data["tracks"]["audio"]["tiers"]
    assert tiers["detailed"] == {"text": "failed", "audio": "skipped", "error": "detailed 요청 실패"}
    assert tiers["complete"]["audio"] == "success"


async def test_failed_tier_keeps_previous_values(repository, speech, store, colosseum):
    orchestrator = build_orchestrator(repository, FakeCompletionClient(), speech, store)
    first = await orchestrator.run(colosseum)

    failing = build_orchestrator(repository, FakeCompletionClient(fail={"complete"}), speech, store)
    second = await failing.run(colosseum, GenerationOptions(force=True, knowledge=False))

    assert second.transcripts[Tier.COMPLETE] == first.transcripts[Tier.COMPLETE]
    assert second.audio_paths[Tier.COMPLETE] == first.audio_paths[Tier.COMPLETE]
    assert second.audio.tiers[Tier.BRIEF].audio_status == Outcome.SUCCESS
    assert repository.pois[first.poi_id].audio_paths[Tier.COMPLETE] == first.audio_paths[Tier.COMPLETE]


async def test_new_text_without_audio_drops_stale_audio_path(repository, store, colosseum):
    await build_orchestrator(repository, FakeCompletionClient(), FakeSpeechClient(), store).run(colosseum)

    completion = FakeCompletionClient(responses={"detailed": "NEW detailed narration."})
    speech = FakeSpeechClient(fail_when=lambda text: text.startswith("NEW"))
    second = await build_orchestrator(repository, completion, speech, store).run(
        colosseum, GenerationOptions(force=True, knowledge=False)
    )

    record = repository.pois[second.poi_id]
    assert record.transcripts[Tier.DETAILED] == "NEW detailed narration."
    assert record.audio_paths[Tier.DETAILED] is None
    for tier in (Tier.BRIEF, Tier.COMPLETE):
        assert store.objects[record.audio_paths[tier]].decode() == record.transcripts[tier]

    third = await build_orchestrator(repository, FakeCompletionClient(), FakeSpeechClient(), store).run(
        colosseum, GenerationOptions(knowledge=False)
    )
    assert third.state == PipelineState.DONE
    assert repository.pois[second.poi_id].audio_paths[Tier.DETAILED] is not None


async def test_route_marker_short_circuits(orchestrator, repository, completion, speech):
    marker = PoiInput(place_id="marker-1", name="Tour Starting Point")

    data = (await orchestrator.run(marker)).to_dict()

    assert data["success"] is True
    assert data["skippedMarker"] is True
    assert completion.calls == []
    assert speech.calls == []
    assert len(repository.pois) == 1


@pytest.mark.parametrize("poi, expected", [
    (PoiInput(place_id="a", name="End Point"), True),
    (PoiInput(place_id="b", name="Return to start"), True),
    (PoiInput(place_id="c", name="Stop", types=["starting_point"]), True),
    (PoiInput(place_id="d", name="Pointe du Hoc"), False),
])
def test_is_route_marker(poi, expected):
    assert is_route_marker(poi) is expected


async def test_identity_failure_fails_the_poi(completion, speech, store, colosseum):
    repository = InMemoryPoiRepository(fail_place_ids={colosseum.place_id})
    orchestrator = build_orchestrator(repository, completion, speech, store)

    with pytest.raises(IdentityResolutionError):
        await orchestrator.run(colosseum)

    safe = await orchestrator.run_safely(colosseum)
    assert safe["success"] is False
    assert safe["placeId"] == colosseum.place_id
    assert "POI ID 확인 실패" in safe["error"]
    assert completion.calls == []


async def test_knowledge_only_run(orchestrator, completion, speech, colosseum):
    result = await orchestrator.run(colosseum, GenerationOptions(audio=False))

    assert speech.calls == []
    assert sorted(completion.calls) == sorted(KNOWLEDGE_SECTIONS)
    assert result.audio.status == Outcome.SKIPPED
    assert result.knowledge_generated is True


async def test_all_audio_failing_reports_failed_track(repository, completion, store, colosseum):
    speech = FakeSpeechClient(fail_when=lambda text: True)
    orchestrator = build_orchestrator(repository, completion, speech, store)

    result = await orchestrator.run(colosseum)

    assert result.audio.status == Outcome.FAILED
    assert result.audio_generated is False
    assert result.knowledge_generated is True
    record = repository.pois[result.poi_id]
    assert record.audio_generated_at is None
    assert record.transcripts[Tier.BRIEF] == "brief narration for Colosseum."


async def test_persist_failure_marks_audio_track_failed(completion, speech, store, colosseum):
    repository = InMemoryPoiRepository(fail_audio_writes=True)
    orchestrator = build_orchestrator(repository, completion, speech, store)

    result = await orchestrator.run(colosseum)

    assert result.state == PipelineState.DONE
    assert result.audio.status == Outcome.FAILED
    assert result.to_dict()["audioGenerated"] is False
    assert result.knowledge_generated is True


async def test_knowledge_failure_is_not_persisted(repository, speech, store, colosseum):
    completion = FakeCompletionClient(fail=set(KNOWLEDGE_SECTIONS))
    orchestrator = build_orchestrator(repository, completion, speech, store)

    result = await orchestrator.run(colosseum)

    assert result.knowledge_track.status == Outcome.FAILED
    assert repository.knowledge == {}
    assert result.audio_generated is True


async def test_storage_failure_keeps_text(repository, completion, speech, colosseum):
    orchestrator = build_orchestrator(repository, completion, speech, FakeObjectStore(fail=True))

    result = await orchestrator.run(colosseum)

    assert result.audio.status == Outcome.FAILED
    assert result.transcripts[Tier.BRIEF] is not None
    assert result.audio_paths[Tier.BRIEF] is None
