"""Which calls a gadget may make before reaching its final exec-family call."""
from __future__ import annotations

import enum
import logging
from typing import Dict, Mapping, Sequence

LOGGER = logging.getLogger(__name__)


class Predicate(enum.Enum):
    """Checks a benign call places on one of its arguments."""

    GLOBAL_VAR = "global_var"
    ZERO = "zero"


# Calls that replace the process image and end the gadget.
TERMINAL_CALLS = ("execve", "execl", "posix_spawn")

# Calls that leave the state usable, with the argument checks they need.
BENIGN_CALLS: Dict[str, Dict[int, Predicate]] = {
    "sigprocmask": {},
    "__close": {},
    "unsetenv": {0: Predicate.GLOBAL_VAR},
    "__sigaction": {1: Predicate.GLOBAL_VAR, 2: Predicate.ZERO},
}


class CallVerdict(enum.Enum):
    TERMINAL = "terminal"
    BENIGN = "benign"
    UNRESOLVED = "unresolved"


class CallClassifier:
    def __init__(
        self,
        terminal: Sequence[str] = TERMINAL_CALLS,
        benign: Mapping[str, Mapping[int, Predicate]] = BENIGN_CALLS,
    ):
        self.terminal = tuple(terminal)
        self.benign = dict(benign)

    def classify(self, target: str, processor) -> CallVerdict:
        """
        Classify a call target against the current argument values

        Args:
            target: Call operand, e.g. ``execve`` or ``0xe4e30 <execve>``
            processor: Emulator whose arguments the predicates inspect

        Returns:
            CallVerdict
        """
        if any(name in target for name in self.terminal):
            return CallVerdict.TERMINAL

        func = next((name for name in self.benign if name in target), None)
        if func is None:
            LOGGER.debug("call %s: unknown function", target)
            return CallVerdict.UNRESOLVED
        checks = {
            Predicate.GLOBAL_VAR: processor.global_var,
            Predicate.ZERO: processor.zero,
        }
        if all(processor.check_argument(idx, checks[predicate]) for idx, predicate in self.benign[func].items()):
            return CallVerdict.BENIGN
        LOGGER.debug("call %s: argument check failed", target)
        return CallVerdict.UNRESOLVED
