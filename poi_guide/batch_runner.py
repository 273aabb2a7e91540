"""
투어 단위 배치 POI 생성 스크립트

YAML 투어 설정 파일을 읽어 투어에 포함된 모든 POI를 동시에 처리합니다.
POI 사이에는 순서 의존성이 없으며, 한 POI의 치명적 실패가 다른 POI를
취소하거나 지연시키지 않습니다.

주요 기능:
- YAML 기반 투어 설정 파싱 및 검증
- POI별 독립 파이프라인 동시 실행 (입력 순서대로 결과 수집)
- 호출자 수준 타임아웃 (미완료 작업은 취소하지 않고 timeout으로 보고)
- 단일 POI / POI 배열 요청 처리
- 실행 결과 JSON 리포트 생성
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from poi_guide.config import Settings
from poi_guide.errors import BatchRunnerError
from poi_guide.main import build_pipeline
from poi_guide.models import BatchItemResult, BatchResult, GenerationOptions, PoiInput
from poi_guide.pipelines.orchestrator import PipelineOrchestrator
from poi_guide.utils.path_sanitizer import sanitize_path_segment

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "timeout"


def load_tour_config(yaml_path: Path) -> Dict[str, Any]:
    """
    YAML 투어 설정 파일을 로드합니다.

    Args:
        yaml_path: YAML 파일 경로

    Returns:
        파싱된 설정 딕셔너리

    Raises:
        FileNotFoundError: YAML 파일을 찾을 수 없을 때
        yaml.YAMLError: YAML 파싱 오류
    """
    if not yaml_path.exists():
        raise FileNotFoundError(f"투어 설정 파일을 찾을 수 없습니다: {yaml_path}")

    logger.info(f"투어 설정 파일 로드: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"YAML 파싱 오류: {e}")

    return config


def validate_tour_config(config: Dict[str, Any]) -> bool:
    """
    투어 설정의 유효성을 검증합니다.

    Raises:
        BatchRunnerError: 필수 필드 누락 또는 잘못된 설정
    """
    if not isinstance(config, dict):
        raise BatchRunnerError("투어 설정은 매핑 형식이어야 합니다.")

    if "tour_name" not in config:
        raise BatchRunnerError("필수 필드 누락: tour_name")

    if "pois" not in config or not isinstance(config["pois"], list):
        raise BatchRunnerError("필수 필드 누락 또는 형식 오류: pois (리스트여야 함)")

    if len(config["pois"]) == 0:
        raise BatchRunnerError("pois 리스트가 비어있습니다. 최소 1개 이상의 POI가 필요합니다.")

    for idx, poi in enumerate(config["pois"]):
        if not isinstance(poi, dict):
            raise BatchRunnerError(f"pois[{idx}]: 딕셔너리 형식이어야 합니다.")
        if not (poi.get("place_id") or poi.get("id")):
            raise BatchRunnerError(f"pois[{idx}]: 필수 필드 누락 - place_id")

    logger.info(f"✅ 설정 파일 검증 완료: {len(config['pois'])}개 POI")
    return True


def _poi_label(payload: Dict[str, Any], index: int) -> str:
    return str(payload.get("id") or payload.get("place_id") or f"pois[{index}]")


async def _run_one(
    orchestrator: PipelineOrchestrator,
    payload: Dict[str, Any],
    options: Optional[GenerationOptions],
    label: str,
) -> BatchItemResult:
    """POI 하나를 실행하고 모든 예외를 해당 항목의 실패로 변환한다."""
    try:
        poi = PoiInput.from_dict(payload)
        result = await orchestrator.run(poi, options)
    except Exception as e:
        logger.error(f"❌ [{label}] POI 처리 실패: {e}")
        return BatchItemResult(poi_id=label, success=False, error=str(e))
    return BatchItemResult(poi_id=label, success=True, result=result)


async def run_batch(
    orchestrator: PipelineOrchestrator,
    pois: List[Dict[str, Any]],
    options: Optional[GenerationOptions] = None,
    timeout: Optional[float] = None,
) -> BatchResult:
    """
    POI 목록을 동시에 처리합니다.

    Args:
        orchestrator: POI 파이프라인 오케스트레이터
        pois: POI 페이로드 목록
        options: 모든 POI에 적용할 생성 옵션
        timeout: 전체 대기 시간 제한 (초). 초과 시 미완료 POI는 timeout 실패로
            보고되며, 진행 중인 작업은 취소되지 않고 BatchResult.pending에 남는다.

    Returns:
        BatchResult: 입력 순서대로 정렬된 POI별 결과와 집계
    """
    if not pois:
        return BatchResult()

    start_time = time.time()
    labels = [_poi_label(payload, idx) for idx, payload in enumerate(pois)]
    tasks = [
        asyncio.ensure_future(_run_one(orchestrator, payload, options, label))
        for payload, label in zip(pois, labels)
    ]

    logger.info(f"🎬 배치 실행 시작: {len(tasks)}개 POI")
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    if pending:
        logger.warning(f"⚠️ 타임아웃: {len(pending)}개 POI가 {timeout}초 안에 완료되지 않았습니다.")

    items: List[BatchItemResult] = []
    for task, label in zip(tasks, labels):
        if task in done:
            items.append(task.result())
        else:
            items.append(BatchItemResult(poi_id=label, success=False, error=TIMEOUT_ERROR))

    batch = BatchResult(items=items, duration=time.time() - start_time, pending=list(pending))
    logger.info(
        f"배치 실행 완료: 성공 {batch.successful}/{batch.total}, "
        f"실패 {batch.failed}/{batch.total} ({batch.duration:.1f}초)"
    )
    return batch


async def drain_pending(batch: BatchResult) -> None:
    """타임아웃으로 보고된 뒤에도 실행 중인 POI 작업이 끝날 때까지 기다린다."""
    if not batch.pending:
        return
    logger.info(f"⏳ 타임아웃된 POI {len(batch.pending)}개가 끝날 때까지 대기합니다.")
    await asyncio.wait(batch.pending)


async def process_request(
    orchestrator: PipelineOrchestrator,
    payload: Union[Dict[str, Any], List[Dict[str, Any]]],
) -> Dict[str, Any]:
    """
    투어 UI 요청을 처리합니다.

    지원 형태:
        {"poiData": {...}, "options": {...}}  단일 POI
        {"poisArray": [...], "options": {...}}  POI 배열
        [...]  POI 배열
        {...}  단일 POI (place_id 포함)

    Returns:
        단일 POI는 파이프라인 결과, 배열은 배치 결과 딕셔너리
    """
    options = None
    pois: List[Dict[str, Any]] = []
    if isinstance(payload, list):
        pois = [p for p in payload if isinstance(p, dict)]
    elif isinstance(payload, dict):
        options = GenerationOptions.from_dict(payload.get("options"))
        if isinstance(payload.get("poisArray"), list):
            pois = [p for p in payload["poisArray"] if isinstance(p, dict)]
        elif isinstance(payload.get("poiData"), dict):
            return await _process_single(orchestrator, payload["poiData"], options)
        elif payload.get("place_id") or payload.get("id"):
            return await _process_single(orchestrator, payload, options)

    if not pois:
        return {"success": False, "error": "No valid POI data provided"}

    batch = await run_batch(orchestrator, pois, options)
    return batch.to_dict()


async def _process_single(
    orchestrator: PipelineOrchestrator,
    data: Dict[str, Any],
    options: Optional[GenerationOptions],
) -> Dict[str, Any]:
    try:
        poi = PoiInput.from_dict(data)
    except ValueError as e:
        return {"success": False, "error": str(e)}
    return await orchestrator.run_safely(poi, options)


def generate_batch_report(
    tour_config: Dict[str, Any],
    batch: BatchResult,
    started_at: str,
    completed_at: str,
    base_dir: Path = Path("outputs/tours"),
) -> Path:
    """
    배치 실행 결과 리포트를 JSON 파일로 생성합니다.

    Returns:
        생성된 리포트 파일 경로
    """
    report_dir = base_dir / sanitize_path_segment(tour_config["tour_name"])
    report_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "tour_name": tour_config["tour_name"],
        "description": tour_config.get("description", ""),
        "started_at": started_at,
        "completed_at": completed_at,
        **batch.to_dict(),
    }

    report_path = report_dir / "batch_report.json"
    with open(report_path, "w", encoding="utf-8") as f:
        json.dump(report, f, ensure_ascii=False, indent=2)

    logger.info(f"📊 결과 리포트 생성: {report_path}")
    return report_path


async def run_tour(
    tour_config: Dict[str, Any],
    settings: Settings,
    dry_run: bool = False,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """투어 설정 하나를 실행하고 리포트를 남긴다."""
    options = GenerationOptions.from_dict(tour_config.get("options"))
    context = build_pipeline(settings, dry_run=dry_run)
    started_at = datetime.now().isoformat()
    try:
        await context.prepare()
        batch = await run_batch(context.orchestrator, tour_config["pois"], options, timeout)
        completed_at = datetime.now().isoformat()
        # 클라이언트를 닫기 전에 남은 작업을 마무리한다
        await drain_pending(batch)
    finally:
        await context.aclose()

    report_path = generate_batch_report(tour_config, batch, started_at, completed_at)
    return {
        "tour_name": tour_config["tour_name"],
        "successful": batch.successful,
        "failed": batch.failed,
        "total": batch.total,
        "duration": batch.duration,
        "report_path": report_path,
    }


def main():
    """CLI 진입점"""
    parser = argparse.ArgumentParser(
        description="투어 기반 배치 POI 오디오 가이드 생성",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
사용 예시:
  # 기본 실행
  python -m poi_guide.batch_runner --tour-file tours/sample_tour.yaml

  # Dry-run 모드 (API 호출 없이 테스트)
  python -m poi_guide.batch_runner --tour-file tours/sample_tour.yaml --dry-run

  # 전체 대기 시간 제한
  python -m poi_guide.batch_runner --tour-file tours/sample_tour.yaml --timeout 300

출력 구조:
  outputs/tours/[투어명]/batch_report.json - 실행 결과 리포트
        """
    )
    parser.add_argument(
        "--tour-file",
        type=Path,
        required=True,
        help="투어 설정 YAML 파일 경로 (예: tours/sample_tour.yaml)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="테스트 모드 (API 호출 없이 목업 데이터 생성)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="전체 대기 시간 제한 (초)"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    try:
        tour_config = load_tour_config(args.tour_file)
        validate_tour_config(tour_config)

        result = asyncio.run(run_tour(
            tour_config,
            Settings.from_env(),
            dry_run=args.dry_run,
            timeout=args.timeout,
        ))

        print("\n" + "🎉 " * 20)
        print("배치 실행이 완료되었습니다!")
        print("🎉 " * 20)
        print("\n📍 결과:")
        print(f"  투어: {result['tour_name']}")
        print(f"  성공: {result['successful']}/{result['total']}")
        print(f"  리포트: {result['report_path']}")

        sys.exit(0 if result["failed"] == 0 else 1)

    except FileNotFoundError as e:
        logger.error(f"\n❌ 파일을 찾을 수 없습니다: {e}")
        sys.exit(1)

    except yaml.YAMLError as e:
        logger.error(f"\n❌ YAML 파싱 오류: {e}")
        sys.exit(1)

    except BatchRunnerError as e:
        logger.error(f"\n❌ 배치 실행 실패: {e}")
        sys.exit(1)

    except ValueError as e:
        logger.error(f"\n❌ 설정 오류: {e}")
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
