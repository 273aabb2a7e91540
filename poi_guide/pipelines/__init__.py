"""
POI 오디오 가이드 생성 파이프라인 모듈

구성:
1. identity: 외부 장소 ID → 내부 ID 매핑
2. freshness: 기존 생성물 재사용 여부 판단
3. content_gen: 티어별 내레이션 생성
4. knowledge_gen / structured_output: 지식 시트 생성 및 구조화 응답 복구
5. audio_gen: 음성 합성 및 스토리지 저장
6. orchestrator: POI 단위 상태 머신
"""
