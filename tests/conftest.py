"""Pytest configuration to ensure session-less backend access during tests."""

import os

# Disable session authentication by default so API tests can identify the learner
# with the X-User-Id header. Individual tests can override this via monkeypatch.
os.environ.setdefault("DISABLE_SESSION_AUTH", "true")
# Provide a deterministic yet secure-length session secret for tests to satisfy
# 起動時バリデーション。実運用では `.env` で個別に乱数値を設定すること。
os.environ.setdefault("SESSION_SECRET_KEY", "S9kD2fH5jL8pQ1tV4yX7zB0cN3mR6wA9")
