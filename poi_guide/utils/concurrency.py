"""
비동기 fan-out/fan-in 헬퍼

여러 작업을 동시에 실행하고, 하나가 실패해도 나머지 결과를 모두 수집한다.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable, List, Optional


@dataclass
class Settled:
    """단일 작업의 결과 또는 예외"""
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle_all(aws: Iterable[Awaitable[Any]]) -> List[Settled]:
    """
    모든 작업이 끝날 때까지 기다린 뒤 입력 순서대로 결과를 반환합니다.

    asyncio.gather(return_exceptions=True)와 같지만, 결과를 Settled로 감싸
    호출자가 isinstance 검사 없이 성공/실패를 구분할 수 있게 한다.
    취소(CancelledError)는 결과로 감싸지 않고 그대로 전파한다.

    Args:
        aws: 코루틴 또는 awaitable 목록

    Returns:
        List[Settled]: 입력 순서와 같은 순서의 결과 목록
    """
    results = await asyncio.gather(*aws, return_exceptions=True)

    settled: List[Settled] = []
    for result in results:
        if isinstance(result, Exception):
            settled.append(Settled(error=result))
        elif isinstance(result, BaseException):
            raise result
        else:
            settled.append(Settled(value=result))
    return settled
