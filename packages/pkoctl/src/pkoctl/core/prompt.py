"""Yes/no and free-text questions, swappable for tests and CI."""

from __future__ import annotations

import getpass
from collections import deque
from typing import Callable, Iterable, Protocol

_YES = {"y", "yes"}
_NO = {"n", "no"}


class Prompt(Protocol):
    def confirm(self, question: str, default: bool = False) -> bool: ...

    def ask(self, question: str, default: str = "", secret: bool = False) -> str: ...


class ConsolePrompt:
    def __init__(
        self,
        reader: Callable[[str], str] = input,
        secret_reader: Callable[[str], str] = getpass.getpass,
    ) -> None:
        self._reader = reader
        self._secret_reader = secret_reader

    def confirm(self, question: str, default: bool = False) -> bool:
        hint = "(Y/n)" if default else "(y/N)"
        try:
            reply = self._reader(f"{question} {hint}: ").strip().lower()
        except EOFError:
            return default
        if reply in _YES:
            return True
        if reply in _NO:
            return False
        return default

    def ask(self, question: str, default: str = "", secret: bool = False) -> str:
        reader = self._secret_reader if secret else self._reader
        try:
            reply = reader(f"{question}: ").strip()
        except EOFError:
            return default
        return reply or default


class UnattendedPrompt:
    """Answers every question with its default."""

    def confirm(self, question: str, default: bool = False) -> bool:
        return default

    def ask(self, question: str, default: str = "", secret: bool = False) -> str:
        return default


class CannedPrompt:
    """Replays scripted answers and records the questions asked."""

    def __init__(self, answers: Iterable[bool | str] = ()) -> None:
        self._answers: deque[bool | str] = deque(answers)
        self.questions: list[str] = []

    def confirm(self, question: str, default: bool = False) -> bool:
        self.questions.append(question)
        if not self._answers:
            return default
        return bool(self._answers.popleft())

    def ask(self, question: str, default: str = "", secret: bool = False) -> str:
        self.questions.append(question)
        if not self._answers:
            return default
        return str(self._answers.popleft()) or default
