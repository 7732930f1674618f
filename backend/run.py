import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

DEFAULT_SQLITE_URL = "sqlite:///./nuvyra_admin.db"


def _load_dotenv():
    env_path = Path(__file__).resolve().parent / ".env"
    load_dotenv(env_path, override=False)


def _set_mode(use_dev: bool):
    """
    Configure environment variables for dev/prod mode **before** FastAPI loads.
    """
    if use_dev:
        sqlite_url = os.getenv("SQLITE_DATABASE_URL") or DEFAULT_SQLITE_URL
        os.environ["DATABASE_URL"] = sqlite_url
        os.environ.setdefault("SESSION_COOKIE_SECURE", "false")
    else:
        os.environ.setdefault("SESSION_COOKIE_SECURE", "true")


def _configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main():
    parser = argparse.ArgumentParser(description="Run the Nuvyra Store admin backend")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Use a local SQLite database instead of DATABASE_URL (Supabase Postgres)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    args = parser.parse_args()

    _load_dotenv()
    _set_mode(args.dev)
    _configure_logging(args.verbose)

    mode_label = "development" if args.dev else "production"
    logging.getLogger("run").info("Starting backend in %s mode at http://0.0.0.0:%s", mode_label, args.port)

    # Enable hot reload explicitly via: UVICORN_RELOAD=1 python run.py [--dev]
    reload_enabled = os.getenv("UVICORN_RELOAD", "").strip().lower() in {"1", "true", "yes", "y"}
    uvicorn.run("nuvyra_admin.main:app", host="0.0.0.0", port=args.port, reload=reload_enabled, log_config=None)


if __name__ == "__main__":
    main()
