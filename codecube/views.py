from dataclasses import dataclass

from rich.text import Text

from codecube.config import CHAR_LIMIT, INPUT_PLACEHOLDER, INPUT_WIDTH
from codecube.machine import Phase, SessionState

TITLE = "bold #874BFC"
ACCENT = "bold underline #F849A3"
ACCENT_PLAIN = "bold #F849A3"
PROMPT = "blink #00F3CF"
PROMPT_ALT = "blink #F849A3"
BODY = "#FFFFFF"
DULL = "#878B7D"
BAR_FILLED = "#874BFC"
BAR_EMPTY = "#3C3C3C"
CURSOR = "█"

# C0 and C1 controls except tab and newline, shown as \xNN instead of sent raw.
_CONTROL_ESCAPES = {
    code: f"\\x{code:02x}"
    for code in list(range(0x20)) + list(range(0x7F, 0xA0))
    if code not in (0x09, 0x0A)
}


def printable(text: str) -> str:
    return text.translate(_CONTROL_ESCAPES)


@dataclass(frozen=True)
class Frame:
    body: Text
    align: str = "left"
    vertical: str = "top"


def render(state: SessionState) -> Frame:
    phase = state.phase
    if phase is Phase.MENU:
        return Frame(_menu(), align="center", vertical="middle")
    if phase is Phase.ABOUT:
        return Frame(_about(), align="center", vertical="middle")
    if phase is Phase.CREATE_PASTE:
        return Frame(_prompt("Paste your content below:", state))
    if phase is Phase.RETRIEVE_PASTE:
        return Frame(_prompt("Enter paste ID:", state))
    if phase is Phase.WORKING:
        return Frame(_progress(state))
    if phase is Phase.CREATED:
        return Frame(_created(state))
    if phase is Phase.COPIED:
        return Frame(_copied(state))
    if phase is Phase.KEY_NOT_FOUND:
        return Frame(_failure(f"No paste found with ID {printable(state.paste_id)}"))
    return Frame(_failure(printable(state.error) or "Something went wrong"))


def _menu() -> Text:
    text = Text.assemble(
        "Welcome To ",
        ("CodeCube", TITLE),
        "\nThe place where you go to paste your ",
        ("code!", ACCENT),
        "\n",
        ("Press X to create a new Paste", PROMPT),
        "\n",
        ("Press R to get a paste", PROMPT_ALT),
        "\n",
        ("Press a to learn more about this project", DULL),
        style=BODY,
        justify="center",
    )
    return text


def _about() -> Text:
    return Text.assemble(
        ("About:", TITLE),
        "\n",
        ("CodeCube", ACCENT_PLAIN),
        " is a tiny pastebin you reach over SSH.\n",
        "Every paste is stored under a short 8 character ID\n",
        "that anyone can use to fetch it again.\n",
        ("Press b to go back to the home page", DULL),
        style=BODY,
        justify="center",
    )


def input_view(buffer: str, width: int = INPUT_WIDTH) -> Text:
    if not buffer:
        return Text.assemble("> ", CURSOR, (INPUT_PLACEHOLDER, DULL))
    visible = printable(buffer.replace("\n", "↵"))[-width:]
    return Text.assemble("> ", visible, CURSOR)


def _prompt(label: str, state: SessionState) -> Text:
    return Text.assemble(
        (label, PROMPT),
        "\n\n",
        input_view(state.buffer),
        "\n\n",
        (f"{len(state.buffer)}/{CHAR_LIMIT} characters, enter to submit, esc for the menu", DULL),
    )


def progress_bar(progress: float, width: int) -> Text:
    width = max(1, width)
    filled = int(round(max(0.0, min(1.0, progress)) * width))
    return Text.assemble(
        ("█" * filled, BAR_FILLED),
        ("░" * (width - filled), BAR_EMPTY),
        f" {int(progress * 100):3d}%",
    )


def _progress(state: SessionState) -> Text:
    return progress_bar(state.progress, min(40, state.width - 6))


def _created(state: SessionState) -> Text:
    return Text.assemble(
        "\U0001F680 Paste saved!\n",
        (f"ID: {state.paste_id}", ACCENT),
        "\n\n",
        ("Press enter to go back to the menu, q to quit", DULL),
    )


def _copied(state: SessionState) -> Text:
    text = Text.assemble(("\U0001F680 Copied to your clipboard!", ACCENT_PLAIN), "\n\n")
    room = max(0, state.height - 5)
    lines = state.content.split("\n")
    for line in lines[:room]:
        text.append(printable(line)[: max(1, state.width)] + "\n")
    if len(lines) > room:
        text.append(f"... {len(lines) - room} more lines\n", style=DULL)
    text.append("\nPress enter to go back to the menu, q to quit", style=DULL)
    return text


def _failure(message: str) -> Text:
    return Text.assemble(
        ("Uh oh...", ACCENT),
        "\n",
        message,
        "\n\n",
        ("Press r to try again, enter for the menu, q to quit", DULL),
    )
