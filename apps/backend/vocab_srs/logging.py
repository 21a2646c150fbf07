"""structlog setup for the SRS backend.

ログは 1 行 1 JSON で出力する。学習者のセッションを偽造できる値
（署名鍵・トークン・クッキー）は描画前のプロセッサで伏せ字にする。
"""

from __future__ import annotations

import logging
from typing import Any

import structlog
from structlog import contextvars as structlog_contextvars

from .config import settings

_REDACT_KEY_PARTS = ("token", "secret", "authorization", "password", "cookie")
_REDACTED = "***"


def _redact(raw: object) -> str:
    """8 文字以下は全て隠し、それより長い値は先頭と末尾 4 文字だけ残す。"""

    text = "" if raw is None else str(raw).strip()
    if len(text) <= 8:
        return _REDACTED
    return f"{text[:4]}…{text[-4:]}"


def _key_is_sensitive(key: str | None) -> bool:
    if not key:
        return False
    lowered = key.lower()
    return any(part in lowered for part in _REDACT_KEY_PARTS)


def _scrub(value: Any, key: str | None, secrets: tuple[str, ...]) -> Any:
    if isinstance(value, dict):
        return {k: _scrub(v, str(k), secrets) for k, v in value.items()}
    if isinstance(value, str):
        for secret in secrets:
            value = value.replace(secret, _redact(secret))
    if _key_is_sensitive(key):
        return _redact(value)
    return value


def _redact_secrets(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor: hide session material by key name and by literal value."""

    secrets = (settings.session_secret_key,) if settings.session_secret_key else ()
    return {
        key: value if key == "event" else _scrub(value, str(key), secrets)
        for key, value in event_dict.items()
    }


def _init_sentry(dsn: str) -> None:
    import sentry_sdk
    from sentry_sdk.integrations.logging import LoggingIntegration

    # ERROR 以上だけをイベント化し、INFO はパンくずとして添付する
    sentry_sdk.init(
        dsn=dsn,
        integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
    )


def configure_logging() -> None:
    """Route structlog through stdlib logging and render JSON lines.

    uvicorn が先に登録したハンドラは force=True で置き換える。
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog_contextvars.merge_contextvars,
            _redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
    if settings.sentry_dsn:
        _init_sentry(settings.sentry_dsn)


logger = structlog.get_logger()
