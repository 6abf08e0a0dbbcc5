from __future__ import annotations

from typing import List, Optional


class TextTable:
    """Fixed-column plain text table with right-aligned cells."""

    def __init__(self, spacing: int = 2, indent: int = 0, align_right: bool = True) -> None:
        self.spacing = spacing
        self.indent = indent
        self.align_right = align_right
        self._rows: List[Optional[List[str]]] = []

    def add_row(self, *cells: str) -> None:
        self._rows.append([str(c) for c in cells])

    def add_separator(self) -> None:
        self._rows.append(None)

    def _widths(self) -> List[int]:
        widths: List[int] = []
        for row in self._rows:
            if row is None:
                continue
            for i, cell in enumerate(row):
                if i == len(widths):
                    widths.append(0)
                widths[i] = max(widths[i], len(cell))
        return widths

    def __str__(self) -> str:
        widths = self._widths()
        total = sum(widths) + self.spacing * max(len(widths) - 1, 0)
        gap = " " * self.spacing
        lines = []
        for row in self._rows:
            if row is None:
                lines.append(" " * self.indent + "-" * total)
                continue
            cells = [
                cell.rjust(widths[i]) if self.align_right else cell.ljust(widths[i])
                for i, cell in enumerate(row)
            ]
            line = " " * self.indent + gap.join(cells)
            lines.append(line if self.align_right else line.rstrip())
        return "".join(line + "\n" for line in lines)
