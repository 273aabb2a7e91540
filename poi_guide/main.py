"""
POI 오디오 가이드 생성 진입점

설정에서 클라이언트/저장소/오케스트레이터를 명시적으로 조립하고,
POI 하나에 대한 파이프라인을 실행한다.

주요 기능:
- build_pipeline: 설정 기반 의존성 조립 (모듈 전역 클라이언트 없음)
- process_poi: 단일 POI 처리 헬퍼
- dry_run 모드 (목업 클라이언트 + 로컬 스토리지 + 로컬 SQLite)
- CLI
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from poi_guide.clients.completion import CompletionClient, OpenAICompletionClient
from poi_guide.clients.mock import MockCompletionClient, MockSpeechClient
from poi_guide.clients.speech import GeminiSpeechClient, OpenAISpeechClient, SpeechClient
from poi_guide.clients.storage import LocalObjectStore, ObjectStore, SupabaseObjectStore
from poi_guide.config import Settings
from poi_guide.db.repository import SqlPoiRepository
from poi_guide.errors import PipelineError
from poi_guide.models import GenerationOptions, PoiInput, Tier
from poi_guide.pipelines.audio_gen import AudioSynthesizer
from poi_guide.pipelines.content_gen import ContentGenerator
from poi_guide.pipelines.knowledge_gen import KnowledgeGenerator
from poi_guide.pipelines.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)

DRY_RUN_DATABASE_URL = "sqlite+aiosqlite:///outputs/mock/poi_guide.db"
DRY_RUN_STORAGE_DIR = Path("outputs/mock/audio")


@dataclass
class PipelineContext:
    """조립된 파이프라인과 정리가 필요한 자원"""
    settings: Settings
    repository: SqlPoiRepository
    store: ObjectStore
    orchestrator: PipelineOrchestrator
    dry_run: bool = False

    async def prepare(self) -> None:
        """SQLite 파일 디렉토리와 테이블을 준비한다."""
        url = self.repository.engine.url
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        await self.repository.create_schema()

    async def aclose(self) -> None:
        await self.store.aclose()
        await self.repository.dispose()


def _build_completion(settings: Settings) -> CompletionClient:
    return OpenAICompletionClient(
        settings.require_openai_key(),
        model=settings.completion_model,
        max_retries=settings.max_retries,
    )


def _build_speech(settings: Settings) -> SpeechClient:
    if settings.tts_provider == "gemini":
        return GeminiSpeechClient(
            settings.require_gemini_key(),
            model=settings.tts_model,
            max_chars=settings.tts_max_chars,
        )
    if settings.tts_provider == "openai":
        return OpenAISpeechClient(
            settings.require_openai_key(),
            model=settings.tts_model,
            max_chars=settings.tts_max_chars,
            max_retries=settings.max_retries,
        )
    raise ValueError(f"지원하지 않는 TTS_PROVIDER: {settings.tts_provider} (openai 또는 gemini)")


def _build_store(settings: Settings) -> ObjectStore:
    if settings.storage_backend == "local":
        return LocalObjectStore(Path(settings.local_storage_dir))
    if settings.storage_backend == "supabase":
        return SupabaseObjectStore(
            settings.supabase_url,
            settings.supabase_service_role_key,
            bucket=settings.audio_bucket,
            max_retries=settings.max_retries,
        )
    raise ValueError(f"지원하지 않는 STORAGE_BACKEND: {settings.storage_backend} (supabase 또는 local)")


def build_pipeline(settings: Settings, dry_run: bool = False) -> PipelineContext:
    """
    설정으로 파이프라인 전체를 조립합니다.

    Args:
        settings: 실행 설정
        dry_run: True일 경우 API 호출 없이 목업 클라이언트와 로컬 저장소 사용

    Returns:
        PipelineContext: 오케스트레이터와 정리 대상 자원

    Raises:
        ValueError: 필요한 API 키/설정이 없을 경우 (dry_run=False)
    """
    if dry_run:
        logger.info("🧪 DRY RUN 모드: 목업 클라이언트와 로컬 저장소 사용")
        completion: CompletionClient = MockCompletionClient()
        speech: SpeechClient = MockSpeechClient(max_chars=settings.tts_max_chars)
        store: ObjectStore = LocalObjectStore(DRY_RUN_STORAGE_DIR)
        repository = SqlPoiRepository.from_url(DRY_RUN_DATABASE_URL)
    else:
        completion = _build_completion(settings)
        speech = _build_speech(settings)
        store = _build_store(settings)
        repository = SqlPoiRepository.from_url(settings.database_url)

    orchestrator = PipelineOrchestrator(
        repository,
        ContentGenerator(completion, prompt_version=settings.prompt_version),
        KnowledgeGenerator(completion, prompt_version=settings.prompt_version),
        AudioSynthesizer(speech, store, language=settings.audio_language),
        voice=settings.tts_voice,
    )
    return PipelineContext(
        settings=settings,
        repository=repository,
        store=store,
        orchestrator=orchestrator,
        dry_run=dry_run,
    )


async def process_poi(
    payload: Dict[str, Any],
    options: Optional[GenerationOptions] = None,
    *,
    settings: Optional[Settings] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    POI 하나를 처리하고 호출자 형태의 결과 딕셔너리를 반환합니다.

    저장된 오디오 경로가 있으면 재생용 서명 URL(audioUrls)을 함께 반환한다.

    Raises:
        ValueError: POI에 ID가 없거나 설정이 잘못된 경우
    """
    poi = PoiInput.from_dict(payload)
    settings = settings or Settings.from_env()
    context = build_pipeline(settings, dry_run=dry_run)
    try:
        await context.prepare()
        result = await context.orchestrator.run_safely(poi, options)
        if result.get("audioPaths"):
            paths = {Tier(key): value for key, value in result["audioPaths"].items()}
            urls = await context.orchestrator.audio_synthesizer.signed_urls(
                paths, settings.signed_url_ttl
            )
            result["audioUrls"] = {tier.value: url for tier, url in urls.items()}
        return result
    finally:
        await context.aclose()


def load_poi_file(path: Path) -> Dict[str, Any]:
    """YAML/JSON POI 파일 로드"""
    if not path.exists():
        raise FileNotFoundError(f"POI 파일을 찾을 수 없습니다: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"POI 파일은 매핑 형식이어야 합니다: {path}")
    return data


def main():
    """CLI 진입점"""
    parser = argparse.ArgumentParser(
        description="POI 오디오 가이드 생성 파이프라인 (단일 POI)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
사용 예시:
  # 기본 실행 (실제 API 호출)
  python -m poi_guide.main --poi-file pois/colosseum.yaml

  # Dry-run 모드 (API 호출 없이 테스트)
  python -m poi_guide.main --poi-file pois/colosseum.yaml --dry-run

  # 오디오만 강제 재생성
  python -m poi_guide.main --poi-file pois/colosseum.yaml --no-knowledge --force

참고:
  - OPENAI_API_KEY: 내레이션/지식 생성 및 OpenAI TTS용 (.env 파일)
  - GEMINI_API_KEY: TTS_PROVIDER=gemini일 때 필요
  - SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY: STORAGE_BACKEND=supabase일 때 필요
  - dry-run 모드는 목업 데이터만 생성하므로 API 키가 필요 없습니다.
        """
    )
    parser.add_argument("--poi-file", type=Path, required=True, help="POI YAML/JSON 파일 경로")
    parser.add_argument("--force", action="store_true", help="기존 생성물이 있어도 다시 생성")
    parser.add_argument("--no-audio", action="store_true", help="오디오 트랙 건너뛰기")
    parser.add_argument("--no-knowledge", action="store_true", help="지식 트랙 건너뛰기")
    parser.add_argument("--dry-run", action="store_true", help="테스트 모드 (API 호출 없이 목업 데이터 생성)")
    parser.add_argument("--prompt-version", type=str, default=None, help="프롬프트 세트 버전 (기본값: PROMPT_VERSION 또는 default)")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    try:
        settings = Settings.from_env()
        if args.prompt_version:
            settings.prompt_version = args.prompt_version
        options = GenerationOptions(
            audio=not args.no_audio,
            knowledge=not args.no_knowledge,
            force=args.force,
        )
        payload = load_poi_file(args.poi_file)
        result = asyncio.run(process_poi(payload, options, settings=settings, dry_run=args.dry_run))

        print(json.dumps(result, ensure_ascii=False, indent=2))
        sys.exit(0 if result.get("success") else 1)

    except FileNotFoundError as e:
        logger.error(f"\n❌ 파일을 찾을 수 없습니다: {e}")
        sys.exit(1)

    except (ValueError, yaml.YAMLError) as e:
        logger.error(f"\n❌ 설정 오류: {e}")
        sys.exit(1)

    except PipelineError as e:
        logger.error(f"\n❌ 파이프라인 실행 실패: {e.stage} 단계에서 오류 발생")
        logger.error(f"상세 오류: {e.message}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.warning("\n⚠️ 사용자에 의해 중단되었습니다.")
        sys.exit(130)

    except Exception as e:
        logger.error(f"\n❌ 예상치 못한 오류 발생: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
