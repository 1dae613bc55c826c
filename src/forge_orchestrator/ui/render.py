"""Plain-text output helpers for the forge CLI."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import TextIO


class CLIRenderer:
    """Deterministic plain-text renderer; every method writes whole lines."""

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout

    def _line(self, text: str = "") -> None:
        self._stream.write(text + "\n")

    def heading(self, text: str) -> None:
        self._line(text)
        self._line("=" * len(text))

    def kv(self, key: str, value: object) -> None:
        self._line(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._line(line)

    def section(self, title: str) -> None:
        self._line()
        self._line(title)

    def warning(self, text: str) -> None:
        self._line(f"  Warning: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._line(f"  {prefix}{entry}")

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        if not rows:
            return
        widths = [len(header) for header in headers]
        for row in rows:
            for index, cell in enumerate(row[: len(headers)]):
                widths[index] = max(widths[index], len(cell))

        def _pad(cells: Sequence[str]) -> str:
            return "  ".join(
                (cells[index] if index < len(cells) else "").ljust(width)
                for index, width in enumerate(widths)
            ).rstrip()

        self._line(f"  {_pad(headers)}")
        self._line(f"  {'  '.join('-' * width for width in widths)}")
        for row in rows:
            self._line(f"  {_pad(row)}")


__all__ = ["CLIRenderer"]
