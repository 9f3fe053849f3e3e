"""gadget_modeling: symbolic x86 semantics for checking exec-family gadgets."""

__all__ = [
    "Amd64",
    "I386",
    "X86",
    "get_emulator",
    "INSTRUCTIONS",
    "StepResult",
    "RunResult",
    "FailureKind",
]

from .architectures import Amd64, I386, get_emulator  # noqa: E402
from .instruction import INSTRUCTIONS  # noqa: E402
from .result import FailureKind, RunResult, StepResult  # noqa: E402
from .x86 import X86  # noqa: E402

__version__ = "0.1.0"
