#!/usr/bin/env python3
"""
FastAPIサーバーを起動するエントリポイント
"""
import argparse
import sys
from pathlib import Path

# プロジェクトルートをPYTHONPATHに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import uvicorn

from infrastructure.config.settings import Settings
from infrastructure.logging.log_setup import setup_console_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="curlrunner API server")
    parser.add_argument("--host", type=str, default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="開発時の自動リロード")
    args = parser.parse_args()

    setup_console_logging(level=Settings.from_env().log_level)
    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
