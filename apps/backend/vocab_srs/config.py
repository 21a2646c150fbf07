from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_MIN_SESSION_SECRET_KEY_LENGTH = 32
_PLACEHOLDER_SESSION_SECRETS = frozenset({
    "change-me",
    "changeme",
    "change-me-to-random-value",
    "please-change-me",
})


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - firestore_*: 進捗・語彙カタログを保存する Firestore の接続先
    - srs_*: 復習スケジューラ（SM-2）の上限値や並列度
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- Firestore 接続設定 ---
    gcp_project_id: str | None = Field(
        default=None,
        description="GCP project ID / GCP プロジェクトID",
        validation_alias=AliasChoices("gcp_project_id", "google_cloud_project"),
    )
    firestore_project_id: str | None = Field(
        default=None,
        description="Firestore project ID (falls back to gcp_project_id) / Firestore のプロジェクトID",
    )
    firestore_emulator_host: str | None = Field(
        default=None,
        description="Firestore emulator host:port / Firestore エミュレータの接続先",
    )
    progress_collection: str = Field(
        default="srs_progress",
        description="Collection storing per-user review progress / 学習進捗を保存するコレクション名",
    )
    vocabulary_collection: str = Field(
        default="vocabulary",
        description="Collection storing the vocabulary catalog / 語彙カタログのコレクション名",
    )

    # --- セッション（本人確認） ---
    session_secret_key: str = Field(
        default="",
        description="Secret key for signing session cookies / セッションクッキー署名用シークレット",
    )
    session_cookie_name: str = Field(
        default="srs_session",
        description="Session cookie name / セッションクッキー名",
    )
    session_max_age_seconds: int = Field(
        default=60 * 60 * 24 * 14,
        description="Session lifetime in seconds / セッションの寿命（秒）",
    )
    disable_session_auth: bool = Field(
        default=False,
        description=(
            "Disable session cookie authentication and trust X-User-Id (development/testing only) / "
            "セッションクッキー認証を無効化し X-User-Id を信頼する（開発・テスト用途のみ）"
        ),
    )

    # --- SRS（復習）の上限値 ---
    srs_batch_review_max: int = Field(
        default=100,
        description="Max reviews accepted by one batch request / 一括採点で受け付ける最大件数",
    )
    srs_batch_concurrency: int = Field(
        default=5,
        description="Max reviews persisted concurrently within a batch / 一括採点の同時書き込み数",
    )
    srs_due_default_limit: int = Field(
        default=20,
        description="Default number of due items returned / 復習対象の既定取得件数",
    )
    srs_due_max_limit: int = Field(
        default=100,
        description="Upper bound for the due-items limit parameter / 復習対象取得件数の上限",
    )
    srs_due_filter_chunk_size: int = Field(
        default=50,
        description="Due items joined against the catalog per chunk when filtering / レベル絞り込み時のチャンクサイズ",
    )

    # --- Observability ---
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN (enable if set)"
    )

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("session_secret_key", mode="after")
    @classmethod
    def _validate_session_secret(cls, value: str) -> str:
        """Ensure session secret keys are safely randomised before accepting them.

        なぜ: セッション署名鍵が既知のプレースホルダーや短い文字列のまま起動すると
        学習者本人になりすまして進捗を書き換えられるため、読み込み段階で拒否する。
        """

        secret = (value or "").strip()
        if not secret:
            raise ValueError(
                "SESSION_SECRET_KEY must be a non-empty random string",
            )

        if secret.casefold() in _PLACEHOLDER_SESSION_SECRETS:
            raise ValueError(
                "SESSION_SECRET_KEY must not use placeholder values like 'change-me'",
            )

        if len(secret) < _MIN_SESSION_SECRET_KEY_LENGTH:
            raise ValueError(
                "SESSION_SECRET_KEY must be at least 32 characters long",
            )

        return secret

    @field_validator("srs_batch_concurrency", "srs_due_filter_chunk_size", mode="after")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value


settings = Settings()
