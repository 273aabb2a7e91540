"""
POI 오디오 가이드 파이프라인 예외 정의

치명적 오류(POI 단위 중단)와 복구 가능한 오류(티어/청크/섹션 단위)를 구분한다.
"""

from typing import Optional


class PipelineError(Exception):
    """파이프라인 실행 중 발생하는 예외 (해당 POI의 실행을 중단)"""
    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(f"[{stage}] {message}")


class IdentityResolutionError(PipelineError):
    """외부 장소 ID → 내부 ID 매핑 실패 (저장소 접근 불가 등)"""
    def __init__(self, message: str):
        super().__init__("identity", message)


class DuplicatePoiError(Exception):
    """place_id 유니크 제약 위반 (동시 생성 경합)"""
    def __init__(self, place_id: str):
        self.place_id = place_id
        super().__init__(f"이미 존재하는 place_id: {place_id}")


class RepositoryError(Exception):
    """관계형 저장소 조회/저장 실패"""


class CompletionError(Exception):
    """텍스트 생성 서비스 호출 실패"""


class SpeechSynthesisError(Exception):
    """음성 합성 서비스 호출 실패"""


class AllChunksFailedError(SpeechSynthesisError):
    """모든 텍스트 청크의 음성 합성이 실패한 경우"""
    def __init__(self, total_chunks: int):
        self.total_chunks = total_chunks
        super().__init__(f"모든 청크({total_chunks}개)의 음성 합성에 실패했습니다.")


class StorageError(Exception):
    """오브젝트 스토리지 업로드/URL 생성 실패"""


class BatchRunnerError(Exception):
    """배치 실행 설정 오류"""
    def __init__(self, message: str, file_name: Optional[str] = None, stage: Optional[str] = None):
        self.message = message
        self.file_name = file_name
        self.stage = stage
        if file_name and stage:
            super().__init__(f"[{file_name} - {stage}] {message}")
        elif file_name:
            super().__init__(f"[{file_name}] {message}")
        else:
            super().__init__(message)
