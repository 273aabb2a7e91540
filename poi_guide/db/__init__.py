"""
관계형 저장소 (POI / POI 지식)
"""
