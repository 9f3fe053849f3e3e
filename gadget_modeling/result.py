"""Outcomes of emulating one instruction and one candidate gadget."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional

from .constraints import Constraint


class FailureKind(enum.Enum):
    UNHANDLED_INSTRUCTION = "unhandled-instruction"
    CORRUPTED_STATE = "corrupted-state"
    UNRESOLVED_CALL = "unresolved-call"
    UNSATISFIABLE = "unsatisfiable"


@dataclass(frozen=True)
class StepResult:
    ok: bool
    failure: Optional[FailureKind] = None

    @classmethod
    def success(cls) -> "StepResult":
        return cls(True)

    @classmethod
    def fail(cls, kind: FailureKind) -> "StepResult":
        return cls(False, kind)


class RunStatus(enum.Enum):
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass
class RunResult:
    status: RunStatus
    target: Optional[str] = None
    constraints: List[Constraint] = field(default_factory=list)
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    steps: int = 0

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.RESOLVED

    def to_json(self) -> dict:
        return {
            "status": self.status.value,
            "target": self.target,
            "constraints": [str(c) for c in self.constraints],
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
            "steps": self.steps,
        }
