from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from parley.config import ClientConfig, load_config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class ConnectionInfo:
    server_url: str
    workspace: str | None = None
    authenticated: bool = False

    @property
    def header_label(self) -> str:
        parsed = urlparse(self.server_url)
        host = parsed.netloc or self.server_url
        user = "signed in" if self.authenticated else "guest"
        return f"{host} ({user})"


def _configure_logging(level: str, log_file: Path) -> None:
    # The TUI owns the terminal, so records only go to the file.
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=[handler], force=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="parley", description="Terminal chat overlay for multi-agent threads.")
    parser.add_argument("--server", help="Agent backend URL (env: PARLEY_SERVER_URL).")
    parser.add_argument("--workspace", help="Workspace id used to scope threads (env: PARLEY_WORKSPACE).")
    parser.add_argument("--token", help="Bearer token (env: PARLEY_TOKEN).")
    parser.add_argument("--user-id", help="Signed-in user id (env: PARLEY_USER_ID).")
    parser.add_argument("--data-dir", help="Directory for local preferences (env: PARLEY_DATA_DIR).")
    parser.add_argument("--poll-interval", type=float, help="Seconds between thread list refreshes.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO).",
    )
    parser.add_argument("--log-file", help="Log file path (default: <data-dir>/parley.log).")

    subparsers = parser.add_subparsers(dest="command")
    stub = subparsers.add_parser("stub", help="Run the development stub backend.")
    stub.add_argument("--host", default="127.0.0.1")
    stub.add_argument("--port", type=int, default=8000)
    return parser


def _run_stub(args: argparse.Namespace) -> None:
    import uvicorn

    from parley.server.app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level.lower())


def _run_client(config: ClientConfig) -> None:
    from parley.client import AgentClient
    from parley.tui.app import run_tui

    client = AgentClient(config.server_url, timeout=config.timeout)
    info = ConnectionInfo(
        server_url=config.server_url,
        workspace=config.workspace,
        authenticated=config.auth.is_authenticated,
    )
    logging.getLogger(__name__).info("Connecting to %s (workspace=%s)", config.server_url, config.workspace)
    run_tui(client=client, config=config, connection_info=info)


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "stub":
        logging.basicConfig(level=args.log_level, format=LOG_FORMAT)
        _run_stub(args)
        return

    config = load_config(
        server_url=args.server,
        workspace=args.workspace,
        token=args.token,
        user_id=args.user_id,
        data_dir=args.data_dir,
        poll_interval=args.poll_interval,
    )
    log_file = Path(args.log_file).expanduser() if args.log_file else config.data_dir / "parley.log"
    _configure_logging(args.log_level, log_file)
    _run_client(config)


if __name__ == "__main__":
    main()
