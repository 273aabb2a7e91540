"""
외부 서비스 클라이언트

모든 클라이언트는 설정을 받아 명시적으로 생성되고 파이프라인에 주입된다.
"""

from .completion import CompletionClient, OpenAICompletionClient
from .speech import GeminiSpeechClient, OpenAISpeechClient, SpeechClient
from .storage import LocalObjectStore, ObjectStore, SupabaseObjectStore

__all__ = [
    "CompletionClient",
    "OpenAICompletionClient",
    "SpeechClient",
    "OpenAISpeechClient",
    "GeminiSpeechClient",
    "ObjectStore",
    "SupabaseObjectStore",
    "LocalObjectStore",
]
