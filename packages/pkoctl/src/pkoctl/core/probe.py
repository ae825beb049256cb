from __future__ import annotations

from enum import Enum


class Probe(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"

    @property
    def ok(self) -> bool:
        return self is Probe.SUCCESS
