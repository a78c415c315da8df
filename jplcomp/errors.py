"""Compilation errors with source positions."""

from __future__ import annotations

from pathlib import Path


class CompilationError(Exception):
    """A compile error located at a line and column of a source file."""

    def __init__(self, message: str, filename: str, line: int, column: int) -> None:
        self.message = message
        self.filename = filename
        self.line = line
        self.column = column
        super().__init__(
            f"Compilation failed: {filename}[{line}:{column}]: {message}"
        )


class Logger:
    """Turns byte offsets in a source file into error reports."""

    def __init__(self, filename: str, source: str | bytes | None = None) -> None:
        self.filename = str(filename)
        if isinstance(source, str):
            source = source.encode("utf-8")
        self._source = source

    def _text(self) -> bytes:
        if self._source is None:
            try:
                self._source = Path(self.filename).read_bytes()
            except OSError:
                self._source = b""
        return self._source

    def line_col(self, position: int) -> tuple[int, int]:
        """Return the 1-based (line, column) of a byte offset."""
        prefix = self._text()[:position]
        line = 1 + prefix.count(b"\n")
        last_newline = prefix.rfind(b"\n")
        return line, position - last_newline

    def log_error(self, message: str, position: int) -> None:
        """Raise a CompilationError for ``message`` at ``position``."""
        line, column = self.line_col(position)
        raise CompilationError(message, self.filename, line, column)