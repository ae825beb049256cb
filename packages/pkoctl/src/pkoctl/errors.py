from __future__ import annotations

from dataclasses import dataclass

from .exit_codes import ERR_CONFIG, ERR_FAILURE, ERR_PREREQ


@dataclass
class ScriptError(Exception):
    message: str
    code: int = ERR_FAILURE
    kind: str = "generic_error"

    def __str__(self) -> str:
        return self.message


class PrerequisiteError(ScriptError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ERR_PREREQ, "missing_dependency")


class ConfigError(ScriptError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ERR_CONFIG, "config")


class StepFailed(ScriptError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ERR_FAILURE, "step_failed")
