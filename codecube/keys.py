import codecs
from dataclasses import dataclass
from typing import List, Union

PASTE_START = "\x1b[200~"
PASTE_END = "\x1b[201~"

_CONTROL_KEYS = {
    "\r": "enter",
    "\n": "enter",
    "\t": "tab",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x03": "ctrl+c",
    "\x04": "ctrl+d",
    "\x15": "ctrl+u",
}

_CSI_KEYS = {
    "A": "up",
    "B": "down",
    "C": "right",
    "D": "left",
    "H": "home",
    "F": "end",
    "3~": "delete",
}


@dataclass(frozen=True)
class KeyPress:
    key: str


@dataclass(frozen=True)
class Paste:
    text: str


InputEvent = Union[KeyPress, Paste]


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


class KeyDecoder:
    """Turns raw terminal bytes into key events.

    Printable characters become ``KeyPress`` with the character itself as
    the key, control characters and escape sequences get symbolic names
    (``enter``, ``backspace``, ``ctrl+c``, ``esc``, ``up`` ...). Text sent
    inside bracketed-paste markers arrives as one ``Paste`` event. Incomplete
    UTF-8 sequences and escape sequences are held until the next chunk;
    a lone ESC is only reported as ``esc`` by ``flush`` once the line has
    gone quiet.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._paste: List[str] = []
        self._in_paste = False
        self._last_cr = False

    @property
    def pending_escape(self) -> bool:
        return not self._in_paste and self._pending.startswith("\x1b")

    def feed(self, data: bytes) -> List[InputEvent]:
        self._pending += self._decoder.decode(data)
        return self._scan()

    def flush(self) -> List[InputEvent]:
        """Report a held ESC as a key press when nothing followed it."""
        if not self.pending_escape:
            return []
        self._pending = self._pending[1:]
        self._last_cr = False
        return [KeyPress("esc")] + self._scan()

    def _scan(self) -> List[InputEvent]:
        events: List[InputEvent] = []
        text = self._pending
        i = 0
        while i < len(text):
            if self._in_paste:
                end = text.find(PASTE_END, i)
                if end < 0:
                    keep = _partial_suffix(text, PASTE_END)
                    self._paste.append(text[i:len(text) - keep])
                    i = len(text) - keep
                    break
                self._paste.append(text[i:end])
                events.append(Paste(_normalize_newlines("".join(self._paste))))
                self._paste = []
                self._in_paste = False
                i = end + len(PASTE_END)
                continue

            char = text[i]
            if char == "\x1b":
                consumed, event = self._escape(text, i)
                if consumed == 0:
                    break
                if event is not None:
                    events.append(event)
                i += consumed
                self._last_cr = False
                continue

            if char == "\n" and self._last_cr:
                self._last_cr = False
                i += 1
                continue
            self._last_cr = char == "\r"

            if char in _CONTROL_KEYS:
                events.append(KeyPress(_CONTROL_KEYS[char]))
            elif ord(char) < 0x20:
                events.append(KeyPress(f"ctrl+{chr(ord(char) + 0x60)}"))
            else:
                events.append(KeyPress(char))
            i += 1

        self._pending = text[i:]
        return events

    def _escape(self, text: str, start: int):
        """Return (chars consumed, event) for the sequence at ``start``.

        A consumed count of 0 means the sequence is incomplete.
        """
        if text.startswith(PASTE_START, start):
            self._in_paste = True
            self._paste = []
            return len(PASTE_START), None
        rest = text[start + 1:]
        if not rest:
            return 0, None
        if PASTE_START.startswith(text[start:]):
            return 0, None
        lead = rest[0]
        if lead == "[":
            for offset in range(1, len(rest)):
                if 0x40 <= ord(rest[offset]) <= 0x7E:
                    body = rest[1:offset + 1]
                    return offset + 2, KeyPress(_CSI_KEYS.get(body, "unknown"))
            return 0, None
        if lead == "O":
            if len(rest) < 2:
                return 0, None
            return 3, KeyPress(_CSI_KEYS.get(rest[1], "unknown"))
        if lead == "\x1b":
            return 1, KeyPress("esc")
        return 2, KeyPress(f"alt+{lead}")


def _partial_suffix(text: str, marker: str) -> int:
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if marker.startswith(text[-size:]):
            return size
    return 0
