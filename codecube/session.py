import base64
import os
import queue
import socket
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from codecube.config import (
    BUFFER_SIZE, DEFAULT_HEIGHT, DEFAULT_WIDTH, ENTER_ALT_SCREEN, ESC_TIMEOUT, EXIT_ALT_SCREEN,
    QUEUE_POLL_INTERVAL, RECV_TIMEOUT, TICK_INTERVAL
)
from codecube.keys import KeyDecoder
from codecube.machine import Completed, Event, Job, PasteMachine, Phase, Resize, Tick, perform
from codecube.screen import layout
from codecube.utils import iso_now, json_line, log_error, safe_name
from codecube.views import render

_DISCONNECTED = object()


class ChannelClipboard:
    """Sets the client's clipboard through an OSC 52 escape sequence."""

    def __init__(self, session: "PasteSession"):
        self.session = session

    def deliver(self, content: str) -> None:
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        self.session.write(f"\x1b]52;c;{encoded}\x07".encode("ascii"))


class PasteSession:
    def __init__(
        self,
        session_id: int,
        channel: Any,
        store: Any,
        cache_dirs: Dict[str, str],
        width: int = DEFAULT_WIDTH,
        height: int = DEFAULT_HEIGHT,
        term: str = "",
        id_attempts: int = 0,
        tick_interval: float = TICK_INTERVAL,
        sink: Any = None,
    ):
        self.id = session_id
        self.channel = channel
        self.store = store
        self.cache_dirs = cache_dirs
        self.id_attempts = id_attempts
        self.tick_interval = tick_interval
        self.sink = sink if sink is not None else ChannelClipboard(self)

        self.machine = PasteMachine(width=width, height=height, term=term)
        self.events: "queue.Queue[Any]" = queue.Queue()
        self.decoder = KeyDecoder()

        self.created_at = datetime.now()
        self.closed = threading.Event()
        self.close_reason = ""
        self.write_lock = threading.Lock()
        self.stats_lock = threading.Lock()
        self.jobs_started = 0
        self.jobs_discarded = 0
        self.worker: Optional[threading.Thread] = None
        self.reader_thread: Optional[threading.Thread] = None
        self.ticker_thread: Optional[threading.Thread] = None

        self.session_log_path = self._build_session_log_path()
        self._log("SYS", {"event": "session_created", "width": width, "height": height, "term": term})

    def _build_session_log_path(self) -> str:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"codecube__s{self.id}__{safe_name(self.machine.state.term)}__{stamp}.log"
        return os.path.join(self.cache_dirs["sessions_dir"], filename)

    def _log(self, direction: str, payload: Dict[str, Any]) -> None:
        data = {"ts": iso_now(), "dir": direction, "session_id": self.id}
        data.update(payload)
        json_line(self.session_log_path, data)

    # -------- event intake --------
    def post(self, event: Any) -> bool:
        if self.closed.is_set():
            if isinstance(event, Completed):
                with self.stats_lock:
                    self.jobs_discarded += 1
                self._log("SYS", {"event": "completion_discarded", "job_id": event.job_id})
            return False
        self.events.put(event)
        return True

    def resize(self, width: int, height: int) -> None:
        self.post(Resize(width, height))

    def _reader_loop(self) -> None:
        try:
            while not self.closed.is_set():
                try:
                    data = self.channel.recv(BUFFER_SIZE)
                except socket.timeout:
                    events = self.decoder.flush()
                else:
                    if not data:
                        self._disconnect("client closed channel")
                        return
                    events = self.decoder.feed(data)
                for event in events:
                    self.post(event)
                # A held ESC waits only briefly for the rest of its sequence.
                self.channel.settimeout(ESC_TIMEOUT if self.decoder.pending_escape else RECV_TIMEOUT)
        except Exception as exc:
            if not self.closed.is_set():
                self._disconnect(f"read failed: {exc}")

    def _ticker_loop(self) -> None:
        while not self.closed.wait(self.tick_interval):
            self.post(Tick())

    def _disconnect(self, reason: str) -> None:
        if not self.close_reason:
            self.close_reason = reason
        self.events.put(_DISCONNECTED)

    # -------- jobs --------
    def _start_job(self, job: Job) -> None:
        with self.stats_lock:
            self.jobs_started += 1
        self._log("SYS", {"event": "job_started", "job_id": job.job_id, "action": job.action, "size": len(job.payload)})
        self.worker = threading.Thread(target=self._run_job, args=(job,), daemon=True)
        self.worker.start()

    def _run_job(self, job: Job) -> None:
        try:
            completed = perform(job, self.store, self.sink, self.id_attempts)
        except Exception as exc:
            log_error(f"session {self.id}: job {job.job_id} crashed: {exc}")
            completed = Completed(job.job_id, Phase.ERROR, error="Internal error")
        self._log(
            "SYS",
            {
                "event": "job_finished",
                "job_id": job.job_id,
                "phase": completed.phase.value,
                "paste_id": completed.paste_id,
                "error": completed.error,
            },
        )
        self.post(completed)

    # -------- output --------
    def write(self, data: bytes) -> None:
        if self.closed.is_set():
            return
        with self.write_lock:
            self.channel.sendall(data)

    def paint(self) -> None:
        state = self.machine.state
        frame = render(state)
        self.write(layout(frame.body, state.width, state.height, frame.align, frame.vertical))

    # -------- lifecycle --------
    def run(self) -> None:
        """Drive the session until the user quits or the client goes away."""
        try:
            self.channel.settimeout(RECV_TIMEOUT)
            self.write(ENTER_ALT_SCREEN.encode("ascii"))
            self.paint()

            self.reader_thread = threading.Thread(target=self._reader_loop, daemon=True)
            self.reader_thread.start()
            self.ticker_thread = threading.Thread(target=self._ticker_loop, daemon=True)
            self.ticker_thread.start()

            while not self.closed.is_set():
                try:
                    event = self.events.get(timeout=QUEUE_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if event is _DISCONNECTED:
                    break
                if self.apply(event):
                    self.close_reason = self.close_reason or "quit"
                    break
        except Exception as exc:
            log_error(f"session {self.id} failed: {exc}")
            self._log("SYS", {"event": "session_error", "error": str(exc)})
            self.close_reason = self.close_reason or f"error: {exc}"
        finally:
            self.close()

    def apply(self, event: Event) -> bool:
        """Apply one event; returns True when the session should end."""
        step = self.machine.handle(event)
        if step.job is not None:
            self._start_job(step.job)
        if step.quit:
            return True
        if step.changed:
            self.paint()
        return False

    def close(self) -> None:
        if self.closed.is_set():
            return
        try:
            self.write(EXIT_ALT_SCREEN.encode("ascii"))
        except Exception:
            pass
        self.closed.set()
        try:
            self.channel.close()
        except Exception:
            pass
        self._log("SYS", {"event": "session_closed", "reason": self.close_reason or "closed"})

    def info(self) -> Dict[str, Any]:
        state = self.machine.state
        return {
            "id": self.id,
            "phase": state.phase.value,
            "width": state.width,
            "height": state.height,
            "term": state.term,
            "closed": self.closed.is_set(),
            "close_reason": self.close_reason,
            "jobs_started": self.jobs_started,
            "jobs_discarded": self.jobs_discarded,
            "created_at": self.created_at.isoformat(),
            "session_log_path": self.session_log_path,
        }
