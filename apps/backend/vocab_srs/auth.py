from __future__ import annotations

import uuid
from datetime import UTC, datetime

from fastapi import HTTPException, Request, status
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .config import settings
from .logging import logger

_SESSION_SALT = "vocab_srs.session"
_DEV_USER_HEADER = "x-user-id"


def _build_serializer() -> URLSafeTimedSerializer:
    """Construct a serializer for signing and verifying session tokens."""

    secret = settings.session_secret_key.strip()
    if not secret:
        raise RuntimeError("SESSION_SECRET_KEY is not configured")
    return URLSafeTimedSerializer(secret, salt=_SESSION_SALT)


def _session_max_age() -> int:
    """Return the configured session lifetime in seconds."""

    try:
        max_age = int(getattr(settings, "session_max_age_seconds", 0))
    except (TypeError, ValueError):
        max_age = 0
    return max(60, max_age or 60 * 60 * 24 * 14)


def issue_session_token(user_id: str) -> str:
    """Generate a signed session token tied to the learner's user id.

    トークン発行はログイン処理（外部の ID 基盤）側で行う想定。テストや
    開発用スクリプトからも同じ署名形式で発行できるようにここへ置く。
    """

    serializer = _build_serializer()
    payload = {
        "sid": uuid.uuid4().hex,
        "sub": user_id,
        "issued_at": datetime.now(UTC).replace(microsecond=0).isoformat(),
    }
    return serializer.dumps(payload)


def verify_session_token(token: str) -> dict:
    """Decode a signed session token and return the embedded payload."""

    serializer = _build_serializer()
    return serializer.loads(token, max_age=_session_max_age())


def _session_log_context(request: Request, *, reason: str) -> dict[str, object]:
    """AccessLog と同一キーで失敗理由を記録し、ログ上で突合しやすくする。"""

    client_ip = request.client.host if request.client else "unknown"
    return {
        "reason": reason,
        "path": request.url.path,
        "client_ip": client_ip,
        "user_agent": request.headers.get("user-agent"),
        "request_id": getattr(request.state, "request_id", None),
    }


def _unauthorized(request: Request, reason: str, detail: str) -> HTTPException:
    logger.warning(
        "session_validation_failed",
        **_session_log_context(request, reason=reason),
    )
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_user_id(request: Request) -> str:
    """Resolve the learner id for the request.

    通常は署名付きセッションクッキーの ``sub`` を採用する。
    ``disable_session_auth`` が有効な開発・テスト環境では ``X-User-Id`` ヘッダを信頼する。
    """

    if settings.disable_session_auth:
        user_id = (request.headers.get(_DEV_USER_HEADER) or "").strip()
        if not user_id:
            raise _unauthorized(request, "missing_user_header", "X-User-Id header is missing")
        request.state.user_id = user_id
        return user_id

    cookie_name = settings.session_cookie_name or "srs_session"
    raw_token = request.cookies.get(cookie_name)
    if not raw_token:
        raise _unauthorized(request, "missing_cookie", "Session cookie is missing")

    try:
        payload = verify_session_token(raw_token)
    except SignatureExpired as exc:
        raise _unauthorized(request, "expired", "Session expired") from exc
    except BadSignature as exc:
        raise _unauthorized(request, "bad_signature", "Invalid session token") from exc
    except RuntimeError as exc:
        logger.error(
            "session_validation_failed",
            **_session_log_context(request, reason="configuration_error"),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Session configuration error",
        ) from exc

    sub = payload.get("sub") if isinstance(payload, dict) else None
    if not sub:
        raise _unauthorized(request, "missing_sub", "Invalid session payload")

    request.state.user_id = sub
    return str(sub)
