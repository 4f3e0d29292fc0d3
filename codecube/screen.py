import io

from rich.align import Align
from rich.console import Console, RenderableType

from codecube.config import CLEAR_SCREEN


def layout(content: RenderableType, width: int, height: int, align: str = "left", vertical: str = "top") -> bytes:
    """Paint ``content`` into a ``width`` x ``height`` viewport.

    Returns the bytes to write to a raw-mode terminal: cursor home, clear,
    then at most ``height`` lines joined with CRLF.
    """
    width = max(1, width)
    height = max(1, height)
    console = Console(
        file=io.StringIO(),
        width=width,
        height=height,
        force_terminal=True,
        color_system="truecolor",
        highlight=False,
        emoji=False,
        legacy_windows=False,
    )
    renderable = Align(content, align=align, vertical=vertical, height=height)
    with console.capture() as capture:
        console.print(renderable, end="")
    lines = capture.get().split("\n")[:height]
    return (CLEAR_SCREEN + "\r\n".join(lines)).encode("utf-8")
