"""
Command line entry point.

    minutemaster create-user --email EMAIL --password PASSWORD
    minutemaster serve [--host HOST] [--port PORT]
    minutemaster ui [--port PORT]
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from .config import ConfigManager
from .storage import FirestoreUserStore, LocalUserStore, UserExistsError, UserStore, init_firebase

logger = logging.getLogger(__name__)


def build_user_store() -> UserStore:
    """Firestore when a service account is configured, the local JSON store otherwise."""
    firebase = init_firebase(ConfigManager.get("FIREBASE_CREDENTIALS"), ConfigManager.get("FIREBASE_STORAGE_BUCKET"))
    if firebase is not None:
        return FirestoreUserStore(firebase.db)

    data_dir = ConfigManager.get("DATA_DIR")
    os.makedirs(data_dir, exist_ok=True)
    return LocalUserStore(os.path.join(data_dir, "users.json"))


def create_user(args: argparse.Namespace) -> int:
    from .server.auth import hash_password

    if not args.email.strip() or not args.password:
        print("Email and password are required", file=sys.stderr)
        return 1

    store = build_user_store()
    try:
        user_id = store.create_user(args.email, hash_password(args.password))
    except UserExistsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Created user {args.email.strip().lower()} ({user_id})")
    return 0


def serve(args: argparse.Namespace) -> int:
    from .server.app import configure_logging, create_app

    configure_logging()
    app = create_app()
    host = args.host or ConfigManager.get("HOST")
    port = args.port or ConfigManager.get_int("PORT")

    logger.info(f"Starting MinuteMaster server on {host}:{port}")
    app.run(host=host, port=port, debug=False, threaded=True)
    return 0


def run_ui(args: argparse.Namespace) -> int:
    from streamlit.web import cli as stcli

    app_file = Path(__file__).parent / "ui" / "app.py"
    sys.argv = [
        "streamlit",
        "run",
        str(app_file),
        "--server.headless=true",
        "--browser.gatherUsageStats=false",
        f"--server.port={args.port}",
        "--server.address=localhost",
    ]
    return stcli.main()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="minutemaster", description="Meeting recording and minutes")
    subparsers = parser.add_subparsers(dest="command", required=True)

    user_parser = subparsers.add_parser("create-user", help="Create a user account")
    user_parser.add_argument("--email", required=True)
    user_parser.add_argument("--password", required=True)
    user_parser.set_defaults(func=create_user)

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.set_defaults(func=serve)

    ui_parser = subparsers.add_parser("ui", help="Launch the recording wizard")
    ui_parser.add_argument("--port", type=int, default=8501)
    ui_parser.set_defaults(func=run_ui)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
