"""CodeCube: a pastebin served over SSH."""

__version__ = "0.1.0"
