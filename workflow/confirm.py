"""Confirmer capability consulted before destructive work."""
from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, TextIO, Union

from preflight.types import CheckItem


@dataclass(slots=True)
class ConfirmationRequest:
    kind: str  # "warnings" or "execute"
    op_type: str
    description: str
    targets: List[str]
    level: str
    warnings: List[CheckItem] = field(default_factory=list)
    unbacked: List[str] = field(default_factory=list)


class Confirmer(ABC):
    @abstractmethod
    def confirm(self, request: ConfirmationRequest) -> bool: ...


class ConsoleConfirmer(Confirmer):
    """Ask on the terminal. Anything but an explicit yes declines."""

    def __init__(
        self,
        *,
        input_func: Callable[[str], str] = input,
        stream: Optional[TextIO] = None,
        max_listed: int = 20,
    ) -> None:
        self._input = input_func
        self._stream = stream
        self._max_listed = max_listed

    def _print(self, text: str = "") -> None:
        print(text, file=self._stream or sys.stderr)

    def confirm(self, request: ConfirmationRequest) -> bool:
        if request.kind == "warnings":
            self._print(f"Pre-flight checks raised {len(request.warnings)} warning(s):")
        else:
            self._print(f"About to {request.op_type.replace('_', ' ')} {len(request.targets)} target(s)"
                        f" [{request.level}]: {request.description}")
            for target in request.targets[: self._max_listed]:
                self._print(f"  - {target}")
            hidden = len(request.targets) - self._max_listed
            if hidden > 0:
                self._print(f"  ... and {hidden} more")
            if request.unbacked:
                self._print(f"No snapshot will be kept for {len(request.unbacked)} target(s); they cannot be undone.")
        for item in request.warnings:
            line = f"  ! {item.message}"
            if item.hint:
                line += f" ({item.hint})"
            self._print(line)
        try:
            answer = self._input("Proceed? [y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in {"y", "yes"}


class StaticConfirmer(Confirmer):
    """Canned answers; remembers every request it was asked."""

    def __init__(self, answers: Union[bool, Iterable[bool]] = True) -> None:
        if isinstance(answers, bool):
            self._default: Optional[bool] = answers
            self._answers: List[bool] = []
        else:
            self._default = None
            self._answers = list(answers)
        self.requests: List[ConfirmationRequest] = []

    def confirm(self, request: ConfirmationRequest) -> bool:
        self.requests.append(request)
        if self._answers:
            return self._answers.pop(0)
        return bool(self._default)


__all__ = ["ConfirmationRequest", "Confirmer", "ConsoleConfirmer", "StaticConfirmer"]
