"""Ordered command steps with an attended/unattended failure policy."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..errors import PrerequisiteError, ScriptError
from ..exit_codes import ERR_FAILURE, OK
from .console import Console
from .prompt import Prompt

CONTINUE_QUESTION = "Do you want to continue with the next step anyway?"


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CONTINUED = "continued"


class SequenceCancelled(Exception):
    """Raised by a step when the user declines to go on; not a failure."""


class StepSkipped(Exception):
    """Raised by a step that has nothing to do in the current environment."""


@dataclass(frozen=True)
class Step:
    name: str
    fn: Callable[[], bool]
    description: str = ""


@dataclass(frozen=True)
class StepRecord:
    name: str
    status: StepStatus
    description: str = ""
    message: str = ""
    duration_ms: int = 0


@dataclass
class SequenceReport:
    command: str
    records: list[StepRecord] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not any(rec.status in {StepStatus.FAILED, StepStatus.CONTINUED} for rec in self.records)

    @property
    def exit_code(self) -> int:
        return OK if self.ok else ERR_FAILURE

    def names(self, status: StepStatus) -> list[str]:
        return [rec.name for rec in self.records if rec.status is status]

    def to_payload(self, run_id: str, dry_run: bool = False) -> dict[str, object]:
        from ..contracts.json_output import validate_payload

        if self.cancelled and self.ok:
            status = "cancelled"
        else:
            status = "ok" if self.ok else "failed"
        payload: dict[str, object] = {
            "schema_version": 1,
            "tool": "pkoctl",
            "command": self.command,
            "run_id": run_id,
            "status": status,
            "exit_code": self.exit_code,
            "dry_run": dry_run,
            "steps": [
                {
                    "name": rec.name,
                    "description": rec.description,
                    "status": rec.status.value,
                    "message": rec.message,
                    "duration_ms": rec.duration_ms,
                }
                for rec in self.records
            ],
        }
        validate_payload(payload, "sequence-report.schema.json")
        return payload

    def render_summary(self) -> str:
        lines = [f"{self.command} summary:"]
        marks = {
            StepStatus.SUCCEEDED: "ok",
            StepStatus.FAILED: "FAILED",
            StepStatus.CONTINUED: "failed, continued",
            StepStatus.SKIPPED: "skipped",
        }
        for rec in self.records:
            suffix = f" ({rec.message})" if rec.message and rec.status is not StepStatus.SUCCEEDED else ""
            lines.append(f"  - {rec.name}: {marks[rec.status]}{suffix}")
        if self.cancelled:
            lines.append("  cancelled by user")
        return "\n".join(lines)


class Sequencer:
    """Runs steps in order and keeps a ledger of what happened.

    A failed step aborts the run unless the sequencer is attended and the
    user chooses to go on. A missing prerequisite always aborts.
    """

    def __init__(self, attended: bool, prompt: Prompt, console: Console | None = None) -> None:
        self.attended = attended
        self.prompt = prompt
        self.console = console

    def _run_one(self, step: Step) -> tuple[bool, str, bool]:
        try:
            return bool(step.fn()), "", False
        except PrerequisiteError as exc:
            return False, exc.message, True
        except ScriptError as exc:
            return False, exc.message, False
        except (KeyboardInterrupt, SequenceCancelled, StepSkipped):
            raise
        except Exception as exc:  # noqa: BLE001 - a crashing step is a failed step
            return False, f"{type(exc).__name__}: {exc}", False

    def run(self, steps: list[Step], command: str = "pkoctl") -> SequenceReport:
        report = SequenceReport(command=command)
        pending = list(steps)
        while pending:
            step = pending.pop(0)
            if self.console is not None:
                self.console.debug(f"step {step.name} starting")
            started = time.monotonic()
            try:
                ok, message, fatal = self._run_one(step)
            except StepSkipped as exc:
                report.records.append(StepRecord(step.name, StepStatus.SKIPPED, step.description, str(exc)))
                continue
            except SequenceCancelled as exc:
                report.cancelled = True
                report.records.append(
                    StepRecord(step.name, StepStatus.SUCCEEDED, step.description, str(exc), _ms_since(started))
                )
                break
            duration = _ms_since(started)
            if ok:
                report.records.append(StepRecord(step.name, StepStatus.SUCCEEDED, step.description, "", duration))
                continue
            if self.console is not None:
                self.console.error(message or f"Step '{step.name}' failed")
            if not fatal and self.attended and pending and self.prompt.confirm(CONTINUE_QUESTION, default=False):
                if self.console is not None:
                    self.console.warning(f"Continuing despite {step.name} failure...")
                report.records.append(StepRecord(step.name, StepStatus.CONTINUED, step.description, message, duration))
                continue
            report.records.append(StepRecord(step.name, StepStatus.FAILED, step.description, message, duration))
            break
        report.records.extend(StepRecord(step.name, StepStatus.SKIPPED, step.description) for step in pending)
        return report


def _ms_since(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))
