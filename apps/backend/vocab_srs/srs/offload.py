from __future__ import annotations

from functools import partial
from typing import Any, Callable, TypeVar

import anyio

_T = TypeVar("_T")


async def run_store_call(func: Callable[..., _T], *args: Any, **kwargs: Any) -> _T:
    """同期ストア呼び出しをワーカースレッドへ逃がしてイベントループを塞がない。"""

    # anyio.to_thread.run_sync はキーワード引数を転送しないため partial で包む
    return await anyio.to_thread.run_sync(partial(func, *args, **kwargs))
