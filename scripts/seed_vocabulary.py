#!/usr/bin/env python
"""語彙カタログ（JSON / JSONL）を Firestore（エミュレータを含む）へ流し込むユーティリティ。"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "path",
        type=Path,
        help="投入する語彙ファイル（JSON 配列または JSONL）。各要素に id が必須。",
    )
    parser.add_argument(
        "--project-id",
        default=os.environ.get("FIRESTORE_PROJECT_ID", "vocab-srs-local"),
        help="適用先 Firestore プロジェクト ID（既定: vocab-srs-local）。",
    )
    parser.add_argument(
        "--emulator-host",
        default=os.environ.get("FIRESTORE_EMULATOR_HOST", "127.0.0.1:8080"),
        help="FIRESTORE_EMULATOR_HOST に渡すホスト:ポート。空文字で本番 Firestore へ接続。",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    # 設定クラスは import 時点で環境変数を読むため、先に上書きしてから vocab_srs を読み込む。
    os.environ.setdefault("FIRESTORE_PROJECT_ID", str(args.project_id))
    if args.emulator_host:
        os.environ.setdefault("FIRESTORE_EMULATOR_HOST", str(args.emulator_host))

    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "apps" / "backend"))

    from vocab_srs.logging import configure_logging
    from vocab_srs.seed_vocabulary import seed_vocabulary
    from vocab_srs.store import build_stores

    configure_logging()
    _, catalog = build_stores()
    count = seed_vocabulary(args.path, catalog)
    print(f"Seeded {count} vocabulary entries into Firestore ({args.project_id}).")


if __name__ == "__main__":
    main()
