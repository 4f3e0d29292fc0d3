import argparse
import signal
import threading
from typing import List, Optional

import paramiko

from codecube.config import (
    MAX_ID_ATTEMPTS, MAX_STORE_TIMEOUT, MAX_TICK_INTERVAL, DEFAULT_ID_ATTEMPTS,
    DEFAULT_STORE_TIMEOUT, TICK_INTERVAL, config
)
from codecube.ssh import SessionManager, load_host_key
from codecube.store import SqliteStore, StoreUnavailable, TimedStore
from codecube.utils import clamp_float, clamp_int, log_error, make_cache_dirs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codecube",
        description="CodeCube: a pastebin you reach over SSH",
    )
    parser.add_argument("--host", help="Listen address (overrides CODECUBE_HOST env)")
    parser.add_argument("--port", type=int, help="Listen port (overrides CODECUBE_PORT env)")
    parser.add_argument("--host-key", help="Path to the SSH host key (overrides CODECUBE_HOST_KEY env)")
    parser.add_argument("--db", help="Path to the paste database (overrides CODECUBE_DB_PATH env)")
    parser.add_argument("--cache-dir", help="Directory for session logs (overrides CODECUBE_CACHE_DIR env)")
    parser.add_argument("--store-timeout", type=float, help="Seconds before a store call counts as failed")
    parser.add_argument(
        "--id-attempts",
        type=int,
        help="Identifier draws before giving up on collisions; 0 lets a colliding paste overwrite",
    )
    return parser


def apply_args(args: argparse.Namespace) -> None:
    if args.host: config.HOST = args.host
    if args.port: config.PORT = args.port
    if args.host_key: config.HOST_KEY_PATH = args.host_key
    if args.db: config.DB_PATH = args.db
    if args.cache_dir: config.CACHE_DIR = args.cache_dir
    if args.store_timeout is not None: config.STORE_TIMEOUT = args.store_timeout
    if args.id_attempts is not None: config.ID_ATTEMPTS = args.id_attempts

    config.STORE_TIMEOUT = clamp_float(config.STORE_TIMEOUT, DEFAULT_STORE_TIMEOUT, 0.1, MAX_STORE_TIMEOUT)
    config.ID_ATTEMPTS = clamp_int(config.ID_ATTEMPTS, DEFAULT_ID_ATTEMPTS, 0, MAX_ID_ATTEMPTS)
    config.TICK_INTERVAL = clamp_float(config.TICK_INTERVAL, TICK_INTERVAL, 0.05, MAX_TICK_INTERVAL)


def main(argv: Optional[List[str]] = None) -> None:
    # Pre-load from environment
    config.load_from_env()

    parser = build_parser()
    args = parser.parse_args(argv)
    apply_args(args)
    if not 0 < config.PORT < 65536:
        parser.error(f"invalid port {config.PORT}")

    config.CACHE_DIRS = make_cache_dirs(config.CACHE_DIR)

    try:
        store = TimedStore(SqliteStore(config.DB_PATH), timeout=config.STORE_TIMEOUT)
    except StoreUnavailable as exc:
        parser.exit(1, f"[CODECUBE] {exc}\n")

    try:
        host_key = load_host_key(config.HOST_KEY_PATH)
    except (paramiko.SSHException, OSError) as exc:
        store.close()
        parser.exit(1, f"[CODECUBE] cannot load host key: {exc}\n")

    manager = SessionManager(
        store,
        host_key,
        config.CACHE_DIRS,
        id_attempts=config.ID_ATTEMPTS,
        tick_interval=config.TICK_INTERVAL,
    )

    stop = threading.Event()

    def _request_stop(signum, frame):
        log_error(f"received signal {signum}, shutting down")
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    log_error(
        f"CodeCube started. db={config.DB_PATH} cache={config.CACHE_DIRS['cache_root']} "
        f"store_timeout={config.STORE_TIMEOUT} id_attempts={config.ID_ATTEMPTS}"
    )
    try:
        manager.serve(config.HOST, config.PORT, stop)
    except OSError as exc:
        log_error(f"cannot listen on {config.HOST}:{config.PORT}: {exc}")
    finally:
        open_sessions = manager.list_sessions()["total"]
        if open_sessions:
            log_error(f"dropping {open_sessions} open session(s)")
        manager.close_all()
        store.close()
    log_error("shutting down...")


if __name__ == "__main__":
    main()
