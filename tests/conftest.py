"""테스트 공용 가짜 협력 객체"""

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import pytest

from poi_guide.clients.completion import CompletionClient
from poi_guide.clients.speech import SpeechClient
from poi_guide.clients.storage import ObjectStore
from poi_guide.db.repository import PoiRepository
from poi_guide.errors import (
    CompletionError,
    DuplicatePoiError,
    RepositoryError,
    SpeechSynthesisError,
    StorageError,
)
from poi_guide.models import (
    KNOWLEDGE_SECTIONS,
    STRUCTURED_SECTIONS,
    TIERS,
    KnowledgeRecord,
    PoiInput,
    PoiRecord,
)
from poi_guide.pipelines.audio_gen import AudioSynthesizer
from poi_guide.pipelines.content_gen import ContentGenerator
from poi_guide.pipelines.knowledge_gen import KnowledgeGenerator
from poi_guide.pipelines.orchestrator import PipelineOrchestrator
from poi_guide.utils.prompt_loader import PromptSet

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_content_prompts() -> PromptSet:
    """system_prompt에 티어 이름을 넣어 가짜 클라이언트가 요청을 구분할 수 있게 한다."""
    return PromptSet("test", {
        "templates": {
            tier.value: {
                "system_prompt": tier.value,
                "user_prompt_template": "{name} | {address} | {brief_excerpt} | {source_text}",
                "parameters": {"max_tokens": 100, "brief_excerpt_limit": 50},
            }
            for tier in TIERS
        }
    })


def make_knowledge_prompts() -> PromptSet:
    return PromptSet("test", {
        "templates": {
            section: {
                "system_prompt": section,
                "user_prompt_template": "{name} | {types} | {source_text}",
                "parameters": {"json_mode": section in STRUCTURED_SECTIONS},
            }
            for section in KNOWLEDGE_SECTIONS
        }
    })


class FakeCompletionClient(CompletionClient):
    """
    system_prompt(=티어/섹션 이름)별로 응답을 돌려준다.

    Args:
        responses: 키별 고정 응답
        fail: 실패시킬 키 집합 (CompletionError)
    """

    def __init__(self, responses: Optional[Dict[str, str]] = None, fail=()):
        self.responses = dict(responses or {})
        self.fail = set(fail)
        self.calls: List[str] = []
        self.prompts: Dict[str, str] = {}

    async def _respond(self, system: str, prompt: str, json_mode: bool) -> str:
        self.calls.append(system)
        self.prompts[system] = prompt
        await asyncio.sleep(0)
        if system in self.fail:
            raise CompletionError(f"{system} 요청 실패")
        if system in self.responses:
            return self.responses[system]
        if json_mode:
            if system == "trivia":
                return json.dumps({"trivia": ["fact one", "fact two"]})
            return json.dumps({"opened": "80 AD", "capacity": 50000})
        name = prompt.split(" | ")[0]
        return f"{system} narration for {name}."

    async def complete(self, system, prompt, *, max_tokens=500, temperature=0.7) -> str:
        return await self._respond(system, prompt, json_mode=False)

    async def complete_json(self, system, prompt, *, max_tokens=500, temperature=0.7) -> str:
        return await self._respond(system, prompt, json_mode=True)


class FakeSpeechClient(SpeechClient):
    """텍스트를 그대로 바이트로 돌려주는 TTS. fail_when이 참인 청크는 실패한다."""
    audio_format = "mp3"

    def __init__(self, max_chars: int = 4000, fail_when: Optional[Callable[[str], bool]] = None):
        self.max_chars = max_chars
        self.fail_when = fail_when
        self.calls: List[str] = []

    async def synthesize(self, text: str, voice: str) -> bytes:
        self.calls.append(text)
        await asyncio.sleep(0)
        if self.fail_when and self.fail_when(text):
            raise SpeechSynthesisError(f"합성 실패: {text[:20]}")
        return text.encode("utf-8")


class FakeObjectStore(ObjectStore):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise StorageError(f"업로드 실패: {path}")
        self.objects[path] = data
        self.content_types[path] = content_type
        return path

    async def signed_url(self, path: str, expires_in: int) -> str:
        return f"https://storage.test/signed/{path}?expires={expires_in}"

    def public_url(self, path: str) -> str:
        return f"https://storage.test/public/{path}"


class InMemoryPoiRepository(PoiRepository):
    """
    딕셔너리 기반 저장소

    Args:
        fail_place_ids: get_by_place_id가 RepositoryError를 내는 place_id
        fail_reads: get_poi/get_knowledge가 RepositoryError를 낸다
        fail_audio_writes: upsert_poi_audio가 RepositoryError를 낸다
        race_on_insert: insert 직전에 다른 작성자가 같은 place_id를 먼저 저장한 상황을 흉내낸다
    """

    def __init__(
        self,
        fail_place_ids=(),
        fail_reads: bool = False,
        fail_audio_writes: bool = False,
        race_on_insert: bool = False,
    ):
        self.pois: Dict[str, PoiRecord] = {}
        self.knowledge: Dict[str, KnowledgeRecord] = {}
        self.fail_place_ids = set(fail_place_ids)
        self.fail_reads = fail_reads
        self.fail_audio_writes = fail_audio_writes
        self.race_on_insert = race_on_insert
        self.insert_calls = 0
        self.audio_writes = 0
        self.knowledge_writes = 0

    def _new_record(self, poi: PoiInput) -> PoiRecord:
        record = PoiRecord(
            id=str(uuid.uuid4()),
            place_id=poi.place_id,
            name=poi.name,
            formatted_address=poi.formatted_address,
            location=dict(poi.location),
            types=list(poi.types),
        )
        self.pois[record.id] = record
        return record

    async def get_by_place_id(self, place_id: str) -> Optional[PoiRecord]:
        if place_id in self.fail_place_ids:
            raise RepositoryError(f"연결 실패: {place_id}")
        return next((r for r in self.pois.values() if r.place_id == place_id), None)

    async def get_poi(self, poi_id: str) -> Optional[PoiRecord]:
        if self.fail_reads:
            raise RepositoryError("조회 실패")
        return self.pois.get(poi_id)

    async def insert_poi(self, poi: PoiInput) -> PoiRecord:
        self.insert_calls += 1
        if self.race_on_insert:
            self.race_on_insert = False
            self._new_record(poi)
            raise DuplicatePoiError(poi.place_id)
        if any(r.place_id == poi.place_id for r in self.pois.values()):
            raise DuplicatePoiError(poi.place_id)
        return self._new_record(poi)

    async def upsert_poi_audio(self, poi_id, transcripts, audio_paths, audio_generated_at) -> None:
        if self.fail_audio_writes:
            raise RepositoryError("쓰기 실패")
        if poi_id not in self.pois:
            raise RepositoryError(f"갱신할 POI가 없습니다: {poi_id}")
        record = self.pois[poi_id]
        record.transcripts = dict(transcripts)
        record.audio_paths = dict(audio_paths)
        record.audio_generated_at = audio_generated_at
        self.audio_writes += 1

    async def get_knowledge(self, poi_id: str) -> Optional[KnowledgeRecord]:
        if self.fail_reads:
            raise RepositoryError("조회 실패")
        return self.knowledge.get(poi_id)

    async def upsert_knowledge(self, record: KnowledgeRecord) -> KnowledgeRecord:
        self.knowledge[record.poi_id] = record
        self.knowledge_writes += 1
        return record


class Counter:
    """단조 증가 epoch-ms 시계"""

    def __init__(self, start: int = 1_700_000_000_000):
        self.value = start

    def __call__(self) -> int:
        self.value += 1
        return self.value


@pytest.fixture
def colosseum() -> PoiInput:
    return PoiInput.from_dict({
        "place_id": "ChIJrRMgU7ZhLxMRxAOFkC7I8Sg",
        "basic": {
            "name": "Colosseum",
            "formatted_address": "Piazza del Colosseo, 1, Roma",
            "location": {"lat": 41.8902, "lng": 12.4922},
            "types": ["tourist_attraction"],
        },
        "wikipedia": {
            "title": "Colosseum",
            "url": "https://en.wikipedia.org/wiki/Colosseum",
            "extract": "The Colosseum is an elliptical amphitheatre in the centre of Rome.",
        },
    })


@pytest.fixture
def repository() -> InMemoryPoiRepository:
    return InMemoryPoiRepository()


@pytest.fixture
def completion() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def speech() -> FakeSpeechClient:
    return FakeSpeechClient()


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


def build_orchestrator(
    repository: PoiRepository,
    completion: CompletionClient,
    speech: SpeechClient,
    store: ObjectStore,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        repository,
        ContentGenerator(completion, prompts=make_content_prompts()),
        KnowledgeGenerator(completion, prompts=make_knowledge_prompts()),
        AudioSynthesizer(speech, store, language="en", clock=Counter()),
        voice="nova",
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def orchestrator(repository, completion, speech, store) -> PipelineOrchestrator:
    return build_orchestrator(repository, completion, speech, store)
