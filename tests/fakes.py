from __future__ import annotations

import queue
import socket
import threading
import time
from typing import Callable

from codecube.store import NotFound, PasteStore, StoreUnavailable


class MemoryStore(PasteStore):
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.lock = threading.Lock()
        self.syncs = 0
        self.calls: list[str] = []

    def get(self, key: str) -> str:
        with self.lock:
            self.calls.append("get")
            if key not in self.data:
                raise NotFound(key)
            return self.data[key]

    def set(self, key: str, content: str) -> None:
        with self.lock:
            self.calls.append("set")
            self.data[key] = content

    def sync(self) -> None:
        with self.lock:
            self.calls.append("sync")
            self.syncs += 1

    def contains(self, key: str) -> bool:
        with self.lock:
            return key in self.data


class GatedStore(MemoryStore):
    """Blocks every ``set`` until ``release`` is called."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = threading.Event()
        self.entered = threading.Event()

    def set(self, key: str, content: str) -> None:
        self.entered.set()
        self.gate.wait(5)
        super().set(key, content)

    def release(self) -> None:
        self.gate.set()


class BrokenStore(MemoryStore):
    def get(self, key: str) -> str:
        raise StoreUnavailable("disk on fire")

    def set(self, key: str, content: str) -> None:
        raise StoreUnavailable("disk on fire")

    def sync(self) -> None:
        raise StoreUnavailable("disk on fire")


class RecordingSink:
    def __init__(self) -> None:
        self.delivered: list[str] = []

    def deliver(self, content: str) -> None:
        self.delivered.append(content)


class FakeChannel:
    """Minimal stand-in for a paramiko channel."""

    def __init__(self) -> None:
        self.inbox: queue.Queue[bytes] = queue.Queue()
        self.sent = bytearray()
        self.lock = threading.Lock()
        self.closed = False
        self.timeout = 0.05

    def settimeout(self, timeout: float) -> None:
        self.timeout = min(timeout, 0.05)

    def recv(self, size: int) -> bytes:
        if self.closed:
            return b""
        try:
            return self.inbox.get(timeout=self.timeout)
        except queue.Empty:
            raise socket.timeout()

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError("channel closed")
        with self.lock:
            self.sent += data

    def close(self) -> None:
        self.closed = True

    def type(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.inbox.put(data)

    def hangup(self) -> None:
        self.inbox.put(b"")

    def output(self) -> str:
        with self.lock:
            return bytes(self.sent).decode("utf-8", errors="replace")


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
