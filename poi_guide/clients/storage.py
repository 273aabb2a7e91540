"""
오디오 파일 오브젝트 스토리지 클라이언트

- SupabaseObjectStore: Supabase Storage REST API (httpx)
- LocalObjectStore: 로컬 디렉토리 (dry-run / 개발용)
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import backoff
import httpx

from poi_guide.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStore:
    """오브젝트 스토리지 인터페이스"""

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """path에 data를 덮어쓰기 업로드하고 저장 경로를 반환한다."""
        raise NotImplementedError

    async def signed_url(self, path: str, expires_in: int) -> str:
        raise NotImplementedError

    def public_url(self, path: str) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class SupabaseObjectStore(ObjectStore):
    """
    Supabase Storage 구현

    Args:
        base_url: Supabase 프로젝트 URL (SUPABASE_URL)
        service_key: 서비스 롤 키 (SUPABASE_SERVICE_ROLE_KEY)
        bucket: 버킷 이름 (기본값: audio-guides)
        cache_control: 업로드 파일의 Cache-Control max-age 초 (기본값: 3600)
        client: 주입할 httpx.AsyncClient (테스트용)
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        bucket: str = "audio-guides",
        cache_control: int = 3600,
        timeout: float = 60.0,
        max_retries: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not base_url or not service_key:
            raise ValueError(
                "SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY가 설정되지 않았습니다. "
                "로컬 저장소를 쓰려면 STORAGE_BACKEND=local로 설정해주세요."
            )
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.cache_control = cache_control
        self.max_retries = max(1, max_retries)
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }

    def _object_url(self, prefix: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/{prefix}/{self.bucket}/{quote(path)}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        url = self._object_url("object", path)
        headers = {
            **self._headers(),
            "Content-Type": content_type,
            "Cache-Control": f"max-age={self.cache_control}",
            "x-upsert": "true",
        }
        max_retries = self.max_retries

        def on_backoff(details):
            logger.warning(
                f"⏳ 스토리지 업로드 재시도: {details['wait']:.2f}초 대기 중 "
                f"(재시도 {details['tries']}/{max_retries})"
            )

        @backoff.on_exception(
            backoff.expo,
            httpx.TransportError,
            max_tries=max_retries,
            max_value=30,
            on_backoff=on_backoff,
            jitter=backoff.full_jitter,
        )
        async def _post():
            return await self._client.post(url, content=data, headers=headers)

        try:
            response = await _post()
        except httpx.HTTPError as e:
            raise StorageError(f"오디오 업로드 실패 ({path}): {e}") from e

        if response.status_code >= 400:
            raise StorageError(
                f"오디오 업로드 실패 ({path}): HTTP {response.status_code} {response.text[:200]}"
            )

        logger.info(f"✅ 오디오 업로드 완료: {self.bucket}/{path} ({len(data)} bytes)")
        return path

    async def signed_url(self, path: str, expires_in: int) -> str:
        """서명 URL을 생성한다. 실패하면 공개 URL로 대체한다."""
        url = self._object_url("object/sign", path)
        try:
            response = await self._client.post(
                url, json={"expiresIn": expires_in}, headers=self._headers()
            )
            response.raise_for_status()
            body = response.json()
            signed = body.get("signedURL") or body.get("signedUrl")
            if not signed:
                raise StorageError("응답에 signedURL이 없습니다.")
        except (httpx.HTTPError, ValueError, StorageError) as e:
            logger.warning(f"서명 URL 생성 실패, 공개 URL로 대체합니다 ({path}): {e}")
            return self.public_url(path)

        return f"{self.base_url}/storage/v1{signed}"

    def public_url(self, path: str) -> str:
        return self._object_url("object/public", path)

    async def aclose(self) -> None:
        await self._client.aclose()


class LocalObjectStore(ObjectStore):
    """로컬 파일 시스템 구현 (root_dir 아래에 경로 그대로 저장)"""

    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir)

    def _target(self, path: str) -> Path:
        target = (self.root_dir / path).resolve()
        if self.root_dir.resolve() not in target.parents:
            raise StorageError(f"저장 경로가 루트 디렉토리를 벗어납니다: {path}")
        return target

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            f.write(data)

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self._target(path)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            raise StorageError(f"오디오 파일 저장 실패 ({target}): {e}") from e
        logger.info(f"✅ 오디오 파일 저장 완료: {target} ({len(data)} bytes)")
        return path

    async def signed_url(self, path: str, expires_in: int) -> str:
        return self.public_url(path)

    def public_url(self, path: str) -> str:
        return self._target(path).as_uri()
