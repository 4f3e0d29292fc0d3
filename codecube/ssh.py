import os
import socket
import threading
from typing import Any, Dict, Optional, Tuple

import paramiko

from codecube.config import (
    CHANNEL_ACCEPT_TIMEOUT, DEFAULT_HEIGHT, DEFAULT_WIDTH, HOST_KEY_BITS,
    LISTEN_BACKLOG, SHELL_WAIT_TIMEOUT, TICK_INTERVAL
)
from codecube.session import PasteSession
from codecube.utils import log_error


def load_host_key(path: str) -> paramiko.PKey:
    """Load the server host key, creating an RSA key at ``path`` if absent."""
    if os.path.exists(path):
        try:
            return paramiko.PKey.from_path(path)
        except (paramiko.SSHException, paramiko.UnknownKeyType, ValueError) as exc:
            raise paramiko.SSHException(f"unreadable host key {path}: {exc}") from exc

    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, mode=0o700, exist_ok=True)
    key = paramiko.RSAKey.generate(HOST_KEY_BITS)
    key.write_private_key_file(path)
    os.chmod(path, 0o600)
    log_error(f"generated new host key at {path}")
    return key


class PasteServerInterface(paramiko.ServerInterface):
    """Accepts any client and one interactive shell channel."""

    def __init__(self):
        self.shell_event = threading.Event()
        self.pty_requested = False
        self.term = ""
        self.width = DEFAULT_WIDTH
        self.height = DEFAULT_HEIGHT
        self.session: Optional[PasteSession] = None
        self.lock = threading.Lock()

    def get_allowed_auths(self, username):
        return "none,password,publickey"

    def check_auth_none(self, username):
        return paramiko.AUTH_SUCCESSFUL

    def check_auth_password(self, username, password):
        return paramiko.AUTH_SUCCESSFUL

    def check_auth_publickey(self, username, key):
        return paramiko.AUTH_SUCCESSFUL

    def check_channel_request(self, kind, chanid):
        if kind == "session":
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_pty_request(self, channel, term, width, height, pixelwidth, pixelheight, modes):
        if isinstance(term, bytes):
            term = term.decode("utf-8", errors="replace")
        with self.lock:
            self.pty_requested = True
            self.term = term
            self.width = width or DEFAULT_WIDTH
            self.height = height or DEFAULT_HEIGHT
        return True

    def check_channel_shell_request(self, channel):
        self.shell_event.set()
        return True

    def check_channel_window_change_request(self, channel, width, height, pixelwidth, pixelheight):
        with self.lock:
            self.width = width
            self.height = height
            session = self.session
        if session is not None:
            session.resize(width, height)
        return True

    def attach(self, session: PasteSession) -> None:
        with self.lock:
            self.session = session


class SessionManager:
    def __init__(
        self,
        store: Any,
        host_key: paramiko.PKey,
        cache_dirs: Dict[str, str],
        id_attempts: int = 0,
        tick_interval: float = TICK_INTERVAL,
    ):
        self.store = store
        self.host_key = host_key
        self.cache_dirs = cache_dirs
        self.id_attempts = id_attempts
        self.tick_interval = tick_interval

        self.sessions: Dict[int, PasteSession] = {}
        self.next_session_id = 1
        self.lock = threading.Lock()
        self.address: Optional[Tuple[str, int]] = None
        self.listening = threading.Event()

    def open_session(self, channel: Any, width: int, height: int, term: str) -> PasteSession:
        with self.lock:
            sid = self.next_session_id
            self.next_session_id += 1
        session = PasteSession(
            sid,
            channel,
            self.store,
            self.cache_dirs,
            width=width,
            height=height,
            term=term,
            id_attempts=self.id_attempts,
            tick_interval=self.tick_interval,
        )
        with self.lock:
            self.sessions[sid] = session
        return session

    def close_session(self, session_id: int) -> None:
        with self.lock:
            session = self.sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def run_session(self, session: PasteSession) -> None:
        try:
            session.run()
        except Exception as exc:
            log_error(f"session {session.id} crashed: {exc}")
        finally:
            self.close_session(session.id)

    def handle_connection(self, client: socket.socket, address: Any) -> None:
        transport = paramiko.Transport(client)
        transport.add_server_key(self.host_key)
        server = PasteServerInterface()
        try:
            transport.start_server(server=server)
            channel = transport.accept(CHANNEL_ACCEPT_TIMEOUT)
            if channel is None:
                log_error(f"{address}: no channel opened")
                return
            if not server.shell_event.wait(SHELL_WAIT_TIMEOUT):
                log_error(f"{address}: no shell requested")
                channel.close()
                return
            if not server.pty_requested:
                channel.sendall(b"no active terminal, skipping\r\n")
                channel.close()
                return
            with server.lock:
                width, height, term = server.width, server.height, server.term
            session = self.open_session(channel, width, height, term)
            server.attach(session)
            log_error(f"{address}: session {session.id} started ({term} {width}x{height})")
            self.run_session(session)
            log_error(f"{address}: session {session.id} ended ({session.close_reason})")
        except (paramiko.SSHException, EOFError, OSError) as exc:
            log_error(f"{address}: connection error: {exc}")
        except Exception as exc:
            log_error(f"{address}: unexpected error: {exc}")
        finally:
            transport.close()

    def serve(self, host: str, port: int, stop: threading.Event) -> None:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((host, port))
            listener.listen(LISTEN_BACKLOG)
        except OSError:
            listener.close()
            raise
        listener.settimeout(1.0)
        self.address = listener.getsockname()[:2]
        self.listening.set()
        log_error(f"Starting SSH server on {self.address[0]}:{self.address[1]}")
        try:
            while not stop.is_set():
                try:
                    client, address = listener.accept()
                except socket.timeout:
                    continue
                except OSError as exc:
                    if stop.is_set():
                        break
                    log_error(f"accept failed: {exc}")
                    continue
                thread = threading.Thread(target=self.handle_connection, args=(client, address), daemon=True)
                thread.start()
        finally:
            self.listening.clear()
            listener.close()
            log_error("Stopping SSH server")

    def list_sessions(self) -> Dict[str, Any]:
        with self.lock:
            sessions = [self.sessions[sid] for sid in sorted(self.sessions)]
        rows = [session.info() for session in sessions]
        return {"sessions": rows, "total": len(rows)}

    def close_all(self) -> None:
        with self.lock:
            sessions = list(self.sessions.values())
            self.sessions.clear()
        for session in sessions:
            session.close()
