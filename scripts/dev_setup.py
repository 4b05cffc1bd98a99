"""Prepare a local story server: write the .env settings and create the story tables."""
from __future__ import annotations

import argparse
import secrets
import sys
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values, set_key

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from storybook import create_app, db  # noqa: E402

DEFAULT_ENV_PATH = REPO_ROOT / ".env"
SECRET_NAMES = ("SECRET_KEY", "DEEPSEEK_API_KEY")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--env-path", type=Path, default=DEFAULT_ENV_PATH, help="The .env file to create or update.")
    parser.add_argument("--flask-app", default="wsgi.py", help="FLASK_APP entry point (default: wsgi.py).")
    parser.add_argument(
        "--secret-key",
        help="Flask SECRET_KEY. A random key is generated when neither this nor an existing value is set.",
    )
    parser.add_argument("--deepseek-api-key", help="Credential for AI chapter and title generation.")
    parser.add_argument("--completion-model", help="COMPLETION_MODEL override, e.g. deepseek-chat.")
    parser.add_argument("--database-url", help="DATABASE_URL override; defaults to instance/storybook.db.")
    parser.add_argument(
        "--no-streaming",
        action="store_true",
        help="Set STREAM_CHAPTERS=false so chapters are returned as one JSON document.",
    )
    parser.add_argument("--skip-db", action="store_true", help="Only update the .env file.")
    return parser.parse_args(argv)


def collect_settings(args: argparse.Namespace, existing: Dict[str, Optional[str]]) -> Dict[str, str]:
    settings = {"FLASK_APP": args.flask_app}
    if args.secret_key:
        settings["SECRET_KEY"] = args.secret_key
    elif not existing.get("SECRET_KEY"):
        settings["SECRET_KEY"] = secrets.token_hex(32)
    if args.deepseek_api_key:
        settings["DEEPSEEK_API_KEY"] = args.deepseek_api_key
    if args.completion_model:
        settings["COMPLETION_MODEL"] = args.completion_model
    if args.database_url:
        settings["DATABASE_URL"] = args.database_url
    if args.no_streaming:
        settings["STREAM_CHAPTERS"] = "false"
    return settings


def update_env_file(env_path: Path, settings: Dict[str, str]) -> Dict[str, Optional[str]]:
    env_path.touch(exist_ok=True)
    for key, value in settings.items():
        set_key(str(env_path), key, value, quote_mode="never")
    return dotenv_values(env_path)


def initialize_database() -> None:
    app = create_app()
    with app.app_context():
        db.create_all()
        print(f"Story tables ready at {app.config['SQLALCHEMY_DATABASE_URI']}.")


def main(argv: Optional[list] = None) -> None:
    args = parse_args(argv)
    existing = dotenv_values(args.env_path) if args.env_path.exists() else {}
    values = update_env_file(args.env_path, collect_settings(args, existing))
    print(f"Settings written to {args.env_path}:")
    for key in sorted(values):
        value = values[key] or ""
        if key in SECRET_NAMES and value:
            value = value[:4] + "..."
        print(f"  {key}={value}")

    if args.skip_db:
        print("Database initialization skipped.")
        return
    initialize_database()


if __name__ == "__main__":
    main()
