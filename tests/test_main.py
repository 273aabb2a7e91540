import pytest

from poi_guide.clients.speech import GeminiSpeechClient, OpenAISpeechClient
from poi_guide.clients.storage import LocalObjectStore
from poi_guide.config import Settings
from poi_guide.main import build_pipeline, load_poi_file, process_poi
from poi_guide.models import GenerationOptions

PAYLOAD = {
    "place_id": "ChIJrRMgU7ZhLxMRxAOFkC7I8Sg",
    "basic": {"name": "Colosseum", "formatted_address": "Roma", "types": ["tourist_attraction"]},
    "wikipedia": {"title": "Colosseum", "url": "https://en.wikipedia.org/wiki/Colosseum", "extract": "An amphitheatre."},
}


class TestSettings:
    def test_gemini_provider_defaults(self, monkeypatch):
        monkeypatch.setenv("TTS_PROVIDER", "gemini")
        monkeypatch.delenv("TTS_MODEL", raising=False)
        monkeypatch.delenv("TTS_VOICE", raising=False)

        settings = Settings.from_env()

        assert settings.tts_model == "gemini-2.5-flash-preview-tts"
        assert settings.tts_voice == "Zephyr"

    def test_openai_provider_defaults(self, monkeypatch):
        monkeypatch.delenv("TTS_PROVIDER", raising=False)
        monkeypatch.delenv("TTS_MODEL", raising=False)
        monkeypatch.delenv("TTS_VOICE", raising=False)

        settings = Settings.from_env()

        assert (settings.tts_model, settings.tts_voice) == ("tts-1", "nova")

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv("TTS_MAX_CHARS", "lots")

        with pytest.raises(ValueError):
            Settings.from_env()

    def test_missing_keys(self):
        settings = Settings()

        with pytest.raises(ValueError):
            settings.require_openai_key()
        with pytest.raises(ValueError):
            settings.require_gemini_key()


class TestBuildPipeline:
    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            build_pipeline(Settings(storage_backend="local"))

    def test_rejects_unknown_backends(self):
        with pytest.raises(ValueError):
            build_pipeline(Settings(openai_api_key="sk-test", storage_backend="ftp"))
        with pytest.raises(ValueError):
            build_pipeline(Settings(openai_api_key="sk-test", tts_provider="espeak", storage_backend="local"))

    def test_wires_configured_clients(self, tmp_path):
        settings = Settings(
            openai_api_key="sk-test",
            gemini_api_key="gm-test",
            tts_provider="gemini",
            storage_backend="local",
            local_storage_dir=str(tmp_path),
        )
        context = build_pipeline(settings)
        synthesizer = context.orchestrator.audio_synthesizer

        assert isinstance(synthesizer.speech, GeminiSpeechClient)
        assert isinstance(context.store, LocalObjectStore)

        openai_context = build_pipeline(Settings(openai_api_key="sk-test", storage_backend="local"))
        assert isinstance(openai_context.orchestrator.audio_synthesizer.speech, OpenAISpeechClient)


async def test_dry_run_end_to_end(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = Settings()

    first = await process_poi(PAYLOAD, settings=settings, dry_run=True)

    assert first["success"] is True
    assert first["audioGenerated"] is True
    assert first["knowledgeGenerated"] is True
    assert first["knowledge"]["trivia"]
    assert first["audioUrls"]["brief"].startswith("file://")
    assert (tmp_path / "outputs" / "mock" / "poi_guide.db").exists()
    assert len(list((tmp_path / "outputs" / "mock" / "audio").rglob("*.mp3"))) == 3

    second = await process_poi(PAYLOAD, settings=settings, dry_run=True)

    assert second["state"] == "skipped"
    assert second["audioPaths"] == first["audioPaths"]


async def test_dry_run_marker(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = await process_poi(
        {"place_id": "start", "name": "Starting Point"},
        GenerationOptions(),
        settings=Settings(),
        dry_run=True,
    )

    assert result == {
        "success": True,
        "poiId": result["poiId"],
        "placeId": "start",
        "state": "skipped",
        "skippedMarker": True,
    }


def test_load_poi_file(tmp_path):
    path = tmp_path / "poi.yaml"
    path.write_text("place_id: p1\nname: Pantheon\n", encoding="utf-8")

    assert load_poi_file(path) == {"place_id": "p1", "name": "Pantheon"}

    with pytest.raises(FileNotFoundError):
        load_poi_file(tmp_path / "missing.yaml")
