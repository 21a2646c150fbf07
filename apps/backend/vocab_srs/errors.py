"""Error taxonomy shared by the SRS engine, the stores and the routers.

ルーター層はこれらを HTTP ステータスへ読み替える。一括採点では項目ごとの
失敗として結果配列に記録され、バッチ全体は中断しない。
"""

from __future__ import annotations


class SRSError(Exception):
    """Base class for all scheduling errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SRSError):
    """Malformed input rejected before any storage call."""

    status_code = 400


class NotFoundError(SRSError):
    """Vocabulary missing from the catalog, or progress deleted mid-operation."""

    status_code = 404


class ConflictError(SRSError):
    """A conditional update lost its race even after one recovery attempt."""

    status_code = 409


class StorageError(SRSError):
    """Transient backend failure (timeout, throttling, unavailable)."""

    status_code = 500


class PreconditionFailed(Exception):
    """Raised by a ProgressStore when a conditional update finds no document."""

    def __init__(self, user_id: str, vocabulary_id: str) -> None:
        super().__init__(f"progress {user_id}/{vocabulary_id} does not exist")
        self.user_id = user_id
        self.vocabulary_id = vocabulary_id
