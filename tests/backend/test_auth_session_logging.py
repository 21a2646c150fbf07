"""セッション検証失敗時の構造化ログと学習者 ID の解決を検証するユニットテスト。"""

from __future__ import annotations

import asyncio
import json
from http.cookies import SimpleCookie

import pytest
from fastapi import HTTPException
from itsdangerous import BadSignature, SignatureExpired
from starlette.requests import Request

from vocab_srs.auth import get_current_user_id, issue_session_token, verify_session_token
from vocab_srs.config import settings
from vocab_srs.logging import configure_logging


@pytest.fixture(autouse=True)
def _configure_structlog() -> None:
    """Structlog を JSON 出力に統一し、caplog で検証しやすくする。"""

    configure_logging()


@pytest.fixture()
def session_auth(monkeypatch: pytest.MonkeyPatch) -> None:
    """クッキー認証を有効化する（conftest 既定ではヘッダ認証）。"""

    monkeypatch.setattr(settings, "disable_session_auth", False)


def _structlog_events(caplog: pytest.LogCaptureFixture, event: str) -> list[dict[str, object]]:
    """指定イベント名の structlog ペイロードを抽出する。"""

    matches: list[dict[str, object]] = []
    for record in caplog.records:
        raw = record.getMessage()
        try:
            payload = json.loads(raw) if isinstance(raw, str) else raw
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(payload, dict) and payload.get("event") == event:
            matches.append(payload)
    return matches


def _build_request(
    path: str = "/api/srs/due",
    *,
    cookie_header: str | None = None,
    extra_headers: dict[str, str] | None = None,
    user_agent: str = "pytest-agent",
    client_ip: str = "203.0.113.5",
    request_id: str = "req-123",
) -> Request:
    """モックリクエストを生成し、セッション検証で利用するコンテキストを付与する。"""

    headers = [(b"host", b"testserver")]
    if user_agent:
        headers.append((b"user-agent", user_agent.encode()))
    if cookie_header:
        headers.append((b"cookie", cookie_header.encode()))
    for key, value in (extra_headers or {}).items():
        headers.append((key.lower().encode(), value.encode()))

    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": headers,
        "query_string": b"",
        "client": (client_ip, 12345),
        "server": ("testserver", 80),
        "scheme": "http",
        "app": None,
    }
    request = Request(scope)
    request.state.request_id = request_id
    return request


def _cookie_header(token: str) -> str:
    """URL セーフな Cookie ヘッダー文字列を構築する。"""

    cookie = SimpleCookie()
    cookie[settings.session_cookie_name] = token
    return cookie.output(header="", sep=";").strip()


def test_valid_session_cookie_resolves_user(session_auth) -> None:
    token = issue_session_token("learner-42")
    request = _build_request(cookie_header=_cookie_header(token))

    user_id = asyncio.run(get_current_user_id(request))

    assert user_id == "learner-42"
    assert request.state.user_id == "learner-42"
    assert verify_session_token(token)["sub"] == "learner-42"


def test_logs_missing_cookie_context(session_auth, caplog: pytest.LogCaptureFixture) -> None:
    """セッションクッキー欠如時のログにリクエストコンテキストが含まれる。"""

    request = _build_request()

    with caplog.at_level("WARNING"):
        with pytest.raises(HTTPException) as excinfo:
            asyncio.run(get_current_user_id(request))

    assert excinfo.value.status_code == 401
    payloads = _structlog_events(caplog, "session_validation_failed")
    assert payloads
    payload = payloads[0]
    assert payload["reason"] == "missing_cookie"
    assert payload["path"] == "/api/srs/due"
    assert payload["client_ip"] == "203.0.113.5"
    assert payload["user_agent"] == "pytest-agent"
    assert payload["request_id"] == "req-123"


@pytest.mark.parametrize(
    ("error", "reason"),
    [(SignatureExpired("expired"), "expired"), (BadSignature("bad"), "bad_signature")],
)
def test_logs_rejected_token_reason(
    session_auth,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
    error: Exception,
    reason: str,
) -> None:
    """期限切れ・署名不正のどちらも共通フィールドで警告される。"""

    def _raise(_token: str) -> dict:
        raise error

    monkeypatch.setattr("vocab_srs.auth.verify_session_token", _raise)
    request = _build_request(cookie_header=_cookie_header("tampered-token"), client_ip="198.51.100.7")

    with caplog.at_level("WARNING"):
        with pytest.raises(HTTPException) as excinfo:
            asyncio.run(get_current_user_id(request))

    assert excinfo.value.status_code == 401
    payload = _structlog_events(caplog, "session_validation_failed")[0]
    assert payload["reason"] == reason
    assert payload["client_ip"] == "198.51.100.7"


def test_session_token_is_masked_in_logs(session_auth, caplog: pytest.LogCaptureFixture) -> None:
    """改ざんトークンの中身がログに出ないことを確認する（署名鍵もマスク対象）。"""

    request = _build_request(cookie_header=_cookie_header("x" * 40))

    with caplog.at_level("WARNING"):
        with pytest.raises(HTTPException):
            asyncio.run(get_current_user_id(request))

    text = "\n".join(record.getMessage() for record in caplog.records)
    assert "x" * 40 not in text
    assert settings.session_secret_key not in text


def test_dev_header_identifies_learner_when_auth_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "disable_session_auth", True)
    request = _build_request(extra_headers={"X-User-Id": "learner-dev"})

    assert asyncio.run(get_current_user_id(request)) == "learner-dev"


def test_missing_dev_header_is_unauthorized(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setattr(settings, "disable_session_auth", True)
    request = _build_request()

    with caplog.at_level("WARNING"):
        with pytest.raises(HTTPException) as excinfo:
            asyncio.run(get_current_user_id(request))

    assert excinfo.value.status_code == 401
    assert _structlog_events(caplog, "session_validation_failed")[0]["reason"] == "missing_user_header"
