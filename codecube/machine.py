"""Per-session workflow state machine.

``PasteMachine`` holds one session's state and applies events to it. It never
touches the store itself: a submit returns a ``Job`` that the caller runs with
``perform`` (usually on a worker thread) and feeds back as a ``Completed``
event through the same ordered event stream as key presses and ticks.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from codecube.config import CHAR_LIMIT, DEFAULT_HEIGHT, DEFAULT_WIDTH, PROGRESS_STEP
from codecube.ids import GenerationError, generate_unique
from codecube.keys import KeyPress, Paste
from codecube.store import NotFound, StoreUnavailable
from codecube.utils import log_error


class Phase(Enum):
    MENU = "menu"
    CREATE_PASTE = "create_paste"
    RETRIEVE_PASTE = "retrieve_paste"
    ABOUT = "about"
    WORKING = "working"
    CREATED = "created"
    COPIED = "copied"
    KEY_NOT_FOUND = "key_not_found"
    ERROR = "error"


INPUT_PHASES = frozenset({Phase.CREATE_PASTE, Phase.RETRIEVE_PASTE})
RESULT_PHASES = frozenset({Phase.CREATED, Phase.COPIED, Phase.KEY_NOT_FOUND, Phase.ERROR})
RETRYABLE_PHASES = frozenset({Phase.KEY_NOT_FOUND, Phase.ERROR})

MENU_KEYS = {
    "x": Phase.CREATE_PASTE,
    "X": Phase.CREATE_PASTE,
    "r": Phase.RETRIEVE_PASTE,
    "R": Phase.RETRIEVE_PASTE,
    "a": Phase.ABOUT,
    "A": Phase.ABOUT,
}
BACK_KEYS = frozenset({"b", "B", "esc"})
DISMISS_KEYS = frozenset({"enter", "esc", "b", "B"})


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class Completed:
    job_id: int
    phase: Phase
    paste_id: str = ""
    content: str = ""
    error: str = ""


Event = Union[KeyPress, Paste, Resize, Tick, Completed]


@dataclass(frozen=True)
class Job:
    job_id: int
    action: str  # "create" or "retrieve"
    payload: str


@dataclass(frozen=True)
class Step:
    job: Optional[Job] = None
    quit: bool = False
    changed: bool = False


@dataclass
class SessionState:
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    term: str = ""
    phase: Phase = Phase.MENU
    buffer: str = ""
    paste_id: str = ""
    content: str = ""
    error: str = ""
    progress: float = 0.0
    origin: Optional[Phase] = None
    job_id: Optional[int] = None


class PasteMachine:
    def __init__(self, width: int = DEFAULT_WIDTH, height: int = DEFAULT_HEIGHT, term: str = "", char_limit: int = CHAR_LIMIT):
        self.state = SessionState(width=width, height=height, term=term)
        self.char_limit = char_limit
        self._job_counter = 0

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def handle(self, event: Event) -> Step:
        if isinstance(event, Resize):
            changed = (event.width, event.height) != (self.state.width, self.state.height)
            self.state.width = event.width
            self.state.height = event.height
            return Step(changed=changed)
        if isinstance(event, KeyPress) and event.key == "ctrl+c":
            return Step(quit=True)
        if isinstance(event, Tick):
            return self._tick()
        if isinstance(event, Completed):
            return self._complete(event)
        if self.state.phase is Phase.WORKING:
            # Type-ahead never reaches the result screen.
            return Step()
        if isinstance(event, Paste):
            return self._append(event.text)
        return self._key(event.key)

    def _tick(self) -> Step:
        if self.state.phase is not Phase.WORKING:
            return Step()
        self.state.progress = min(1.0, self.state.progress + PROGRESS_STEP)
        return Step(changed=True)

    def _complete(self, event: Completed) -> Step:
        state = self.state
        if state.phase is not Phase.WORKING or event.job_id != state.job_id:
            return Step()
        state.job_id = None
        state.progress = 0.0
        state.phase = event.phase
        state.paste_id = event.paste_id
        state.content = event.content
        state.error = event.error
        return Step(changed=True)

    def _key(self, key: str) -> Step:
        state = self.state
        phase = state.phase

        if phase is Phase.MENU:
            if key == "q":
                return Step(quit=True)
            target = MENU_KEYS.get(key)
            if target is None:
                return Step()
            if target in INPUT_PHASES:
                state.buffer = ""
            state.phase = target
            return Step(changed=True)

        if phase is Phase.ABOUT:
            if key == "q":
                return Step(quit=True)
            if key in BACK_KEYS:
                state.phase = Phase.MENU
                return Step(changed=True)
            return Step()

        if phase in INPUT_PHASES:
            if key == "enter":
                return self._submit()
            if key == "esc":
                self._reset()
                return Step(changed=True)
            if key == "backspace":
                if not state.buffer:
                    return Step()
                state.buffer = state.buffer[:-1]
                return Step(changed=True)
            if key == "ctrl+u":
                state.buffer = ""
                return Step(changed=True)
            if len(key) == 1:
                return self._append(key)
            return Step()

        if phase in RESULT_PHASES:
            if key == "q":
                return Step(quit=True)
            if key in ("r", "R") and phase in RETRYABLE_PHASES and state.origin is not None:
                state.phase = state.origin
                state.error = ""
                return Step(changed=True)
            if key in DISMISS_KEYS:
                self._reset()
                return Step(changed=True)
        return Step()

    def _append(self, text: str) -> Step:
        state = self.state
        if state.phase not in INPUT_PHASES:
            return Step()
        room = self.char_limit - len(state.buffer)
        if room <= 0 or not text:
            return Step()
        state.buffer += text[:room]
        return Step(changed=True)

    def _submit(self) -> Step:
        state = self.state
        if state.phase is Phase.CREATE_PASTE:
            if state.buffer == "":
                return Step()
            action, payload = "create", state.buffer
        else:
            payload = state.buffer.strip()
            if not payload:
                return Step()
            action = "retrieve"
        self._job_counter += 1
        state.origin = state.phase
        state.job_id = self._job_counter
        state.progress = 0.0
        state.phase = Phase.WORKING
        return Step(job=Job(job_id=self._job_counter, action=action, payload=payload), changed=True)

    def _reset(self) -> None:
        state = self.state
        state.phase = Phase.MENU
        state.buffer = ""
        state.paste_id = ""
        state.content = ""
        state.error = ""
        state.origin = None


def perform(job: Job, store: Any, sink: Any = None, id_attempts: int = 0) -> Completed:
    """Run one job against the store and describe its outcome.

    Generation and store failures become ERROR or KEY_NOT_FOUND outcomes;
    nothing raised here escapes except programming errors.
    """
    if job.action == "create":
        try:
            paste_id = generate_unique(store, id_attempts)
            store.set(paste_id, job.payload)
        except GenerationError as exc:
            return Completed(job.job_id, Phase.ERROR, error=f"Could not create an ID: {exc}")
        except StoreUnavailable as exc:
            return Completed(job.job_id, Phase.ERROR, error=f"Could not save the paste: {exc}")
        return Completed(job.job_id, Phase.CREATED, paste_id=paste_id)

    if job.action == "retrieve":
        try:
            store.sync()
            content = store.get(job.payload)
        except NotFound:
            return Completed(job.job_id, Phase.KEY_NOT_FOUND, paste_id=job.payload)
        except StoreUnavailable as exc:
            return Completed(job.job_id, Phase.ERROR, error=f"Could not load the paste: {exc}")
        if sink is not None:
            try:
                sink.deliver(content)
            except Exception as exc:
                log_error(f"clipboard delivery failed: {exc}")
        return Completed(job.job_id, Phase.COPIED, paste_id=job.payload, content=content)

    raise ValueError(f"unknown job action: {job.action!r}")
