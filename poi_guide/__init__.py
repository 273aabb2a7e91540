"""
POI 지식 & 오디오 가이드 생성 파이프라인

장소(POI)와 출처 발췌문을 받아 세 단계 내레이션, 구조화된 지식 시트,
티어별 오디오를 생성하고 POI당 한 번만 저장한다.
"""

__version__ = "0.1.0"
