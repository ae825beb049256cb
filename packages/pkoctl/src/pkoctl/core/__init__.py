"""Runtime building blocks shared by every command."""

from __future__ import annotations

from .locate import find_operator_namespace, find_stack_namespaces, first_match, locate_namespace
from .poll import PollOutcome, PollResult, poll_until
from .prereqs import check_prerequisites
from .probe import Probe
from .sequence import SequenceCancelled, SequenceReport, Sequencer, Step, StepSkipped, StepStatus

__all__ = [
    "PollOutcome",
    "PollResult",
    "Probe",
    "SequenceCancelled",
    "SequenceReport",
    "Sequencer",
    "Step",
    "StepSkipped",
    "StepStatus",
    "check_prerequisites",
    "find_operator_namespace",
    "find_stack_namespaces",
    "first_match",
    "locate_namespace",
    "poll_until",
]
