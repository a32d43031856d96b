from __future__ import annotations
from typing import List

class NullTrace:
    """Default sink: drops everything so engine functions stay side-effect free."""
    enabled = False

    def add(self, line: str) -> None:
        pass

    def extend(self, many: list[str]) -> None:
        pass

class TraceSession(NullTrace):
    enabled = True

    def __init__(self) -> None:
        self.lines: List[str] = []

    def add(self, line: str) -> None:
        self.lines.append(line)

    def extend(self, many: list[str]) -> None:
        self.lines.extend(many)

    def dump(self) -> list[str]:
        return list(self.lines)

NULL_TRACE = NullTrace()
