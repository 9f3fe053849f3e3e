"""
Instruction semantics shared by the amd64 and i386 emulators
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from .calls import CallClassifier, CallVerdict
from .constraints import ConstraintSolver, WritableConstraint, alignment_constraint
from .errors import (
    CorruptedStateError,
    EvaluationError,
    GadgetModelingError,
    UnsupportedInstructionArgumentError,
    UnsupportedInstructionError,
)
from .instruction import Instruction, Opcode, parse_line
from .processor import Processor, RegisterClass
from .result import FailureKind, RunResult, RunStatus, StepResult
from .symbolic import SymbolicValue, evaluate, memory_base

LOGGER = logging.getLogger(__name__)


class X86(Processor):
    """Super class of the amd64 and i386 emulators."""

    aliases = {}

    def __init__(self, registers, sp, pc):
        super().__init__(registers, sp, pc)
        self.classifier = CallClassifier()
        self._handlers = {
            Opcode.ADD: self._inst_add,
            Opcode.CALL: self._inst_call,
            Opcode.LEA: self._inst_lea,
            Opcode.MOV: self._inst_mov,
            Opcode.NOP: self._inst_nop,
            Opcode.PUSH: self._inst_push,
            Opcode.SUB: self._inst_sub,
            Opcode.XOR: self._inst_xor,
            Opcode.MOVQ: self._inst_movq,
            Opcode.MOVAPS: self._inst_movaps,
            Opcode.MOVHPS: self._inst_movhps,
            Opcode.PUNPCKLQDQ: self._inst_punpcklqdq,
        }
        # jmp is handled in process
        assert set(self._handlers) | {Opcode.JMP} == set(Opcode), "every opcode needs a handler"

    @property
    def target(self) -> Optional[str]:
        """Call target resolved by a terminal call, ``None`` before that."""
        value = dict.get(self.registers, self.pc)
        return value if isinstance(value, str) else None

    def process(self, instruction: Instruction) -> StepResult:
        """
        Apply one instruction to the symbolic state.

        Raises ``UnsupportedInstructionError`` or ``CorruptedStateError`` for
        shapes that are not modeled; an unresolved call is a failed result.
        """
        LOGGER.debug("process: %s", instruction)
        if instruction.opcode is Opcode.JMP:
            # jmp targets are followed by whoever fetched the instructions
            return StepResult.success()
        result = self._handlers[instruction.opcode](*instruction.operands)
        return result or StepResult.success()

    def process_line(self, line: str) -> StepResult:
        return self.process(parse_line(line))

    def run(
        self,
        instructions: Iterable[Union[str, Instruction]],
        max_instructions: Optional[int] = None,
        solver: Optional[ConstraintSolver] = None,
        recorder=None,
    ) -> RunResult:
        """
        Emulate instructions until a terminal call, a failure, or the end of input

        Args:
            instructions: Lines of disassembly or parsed instructions
            max_instructions: Stop after this many instructions
            solver: Checks the raw constraints once the target is resolved
            recorder: Optional ``TraceRecord`` receiving every processed step

        Returns:
            RunResult
        """
        steps = 0
        for item in instructions:
            if max_instructions is not None and steps >= max_instructions:
                break
            steps += 1
            try:
                instruction = parse_line(item) if isinstance(item, str) else item
                result = self.process(instruction)
            except CorruptedStateError as exc:
                LOGGER.debug("corrupted state at %s: %s", item, exc)
                return self._failed(FailureKind.CORRUPTED_STATE, steps, str(exc))
            except GadgetModelingError as exc:
                LOGGER.debug("unhandled instruction %s: %s", item, exc)
                return self._failed(FailureKind.UNHANDLED_INSTRUCTION, steps, str(exc))
            if recorder is not None:
                recorder.add_step(instruction, self)
            if not result.ok:
                return self._failed(result.failure, steps, f"{instruction}")

            if self.target is not None:
                solver = solver or ConstraintSolver()
                if not solver.check_sat(self.constraints):
                    return self._failed(FailureKind.UNSATISFIABLE, steps, "constraints are unsatisfiable")
                return RunResult(RunStatus.RESOLVED, self.target, list(self.constraints), steps=steps)
        return RunResult(RunStatus.EXHAUSTED, constraints=list(self.constraints), steps=steps)

    def _failed(self, kind: FailureKind, steps: int, error: str) -> RunResult:
        return RunResult(RunStatus.FAILED, constraints=list(self.constraints), failure=kind, error=error, steps=steps)

    def _inst_mov(self, dst, src):
        src = self.arg_to_lambda(src)
        if isinstance(src, list):
            raise UnsupportedInstructionArgumentError(f"mov can't read a vector register into {dst}")
        self._reject_vector("mov", dst)
        if self.register(dst):
            self.registers[dst] = src
            return
        address = self._stack_address(dst)
        if address is None:
            # Writes outside the stack are not modeled, only required to be legal.
            return self._add_writable(dst)
        self.stack[evaluate(address, self.eval_dict)] = src

    def _inst_lea(self, dst, src):
        self.check_register(dst)
        self._reject_vector("lea", dst)
        value = self.arg_to_lambda(src)
        if not isinstance(value, SymbolicValue):
            raise UnsupportedInstructionArgumentError(f"lea expects a memory operand, got {src}")
        self.registers[dst] = value.ref()

    def _inst_push(self, val):
        val = self.arg_to_lambda(val)
        if isinstance(val, list):
            raise UnsupportedInstructionArgumentError("push of a vector register")
        self.registers[self.sp] = self.registers[self.sp] - self.size_t
        try:
            cur_top = evaluate(self.registers[self.sp], self.eval_dict)
        except EvaluationError as exc:
            raise CorruptedStateError(f"Corrupted stack pointer: {self.registers[self.sp]}") from exc
        self.stack[cur_top] = val

    def _inst_xor(self, dst, src):
        self.check_register(dst)
        self._reject_vector("xor", dst)
        if dst != src:
            raise UnsupportedInstructionArgumentError("xor operator only supports dst = src")
        self.registers[self.aliases.get(dst, dst)] = 0

    def _inst_add(self, dst, src):
        self.check_register(dst)
        self._reject_vector("add", dst)
        src = self.arg_to_lambda(src)
        if not isinstance(src, int):
            raise UnsupportedInstructionArgumentError(f"Unhandled += of {src}")
        self.registers[dst] = self.registers[dst] + src

    def _inst_sub(self, dst, src):
        src = self.arg_to_lambda(src)
        if not isinstance(src, int):
            raise UnsupportedInstructionArgumentError(f"Unhandled -= of {src}")
        self.check_register(dst)
        self._reject_vector("sub", dst)
        self.registers[dst] = self.registers[dst] - src

    def _inst_nop(self, *_args):
        pass

    def _inst_call(self, addr):
        verdict = self.classifier.classify(addr, self)
        if verdict is CallVerdict.TERMINAL:
            self.registers[self.pc] = addr
            return None
        if verdict is CallVerdict.BENIGN:
            return None
        return StepResult.fail(FailureKind.UNRESOLVED_CALL)

    # This instruction moves 128 bits.
    def _inst_movaps(self, dst, src):
        lanes, address = self._check_xmm_sp("movaps", src, dst, dst, src)
        off = evaluate(address, self.eval_dict)
        constraint = alignment_constraint(self.sp, self.bits, off)
        LOGGER.debug("constraint: %s", constraint)
        self.constraints.append(constraint)
        for i in range(128 // self.bits):
            self.stack[off + i * self.size_t] = lanes[i]

    def _inst_movq(self, dst, src):
        if self.bits == 64 and self._xmm_reg(dst) and self._gpr64(src):
            self.registers[dst][0] = self.registers[src]
            return
        lanes, address = self._check_xmm_sp("movq", dst, src, dst, src)
        off = evaluate(address, self.eval_dict)
        for i in range(64 // self.bits):
            lanes[i] = self.stack[off + i * self.size_t]

    # dst[64:128] = [src]
    def _inst_movhps(self, dst, src):
        lanes, address = self._check_xmm_sp("movhps", dst, src, dst, src)
        off = evaluate(address, self.eval_dict)
        half = 64 // self.bits
        for i in range(half):
            lanes[i + half] = self.stack[off + i * self.size_t]

    # dst[64:128] = src[0:64]
    def _inst_punpcklqdq(self, dst, src):
        if not (self._xmm_reg(dst) and self._xmm_reg(src)):
            raise self._unsupported("punpcklqdq", dst, src)
        dst_lanes = self.registers[dst]
        src_lanes = self.registers[src]
        half = 64 // self.bits
        for i in range(half):
            dst_lanes[i + half] = src_lanes[i]

    def to_lambda(self, reg):
        if self.classify(reg) is not RegisterClass.VECTOR:
            return super().to_lambda(reg)
        cast = f"(u{self.bits})"
        return [
            SymbolicValue(f"{cast}{reg}" if i == 0 else f"{cast}({reg} >> {self.bits * i})")
            for i in range(128 // self.bits)
        ]

    def _stack_address(self, operand) -> Optional[SymbolicValue]:
        """Address of ``operand`` if it has the form ``[sp+k]``, else ``None``."""
        if memory_base(operand) != self.sp:
            return None
        value = self.arg_to_lambda(operand)
        if not isinstance(value, SymbolicValue) or value.deref_count != 1:
            return None
        return value.ref()

    def _check_xmm_sp(self, opcode, xmm, mem, dst, src):
        """Lanes of ``xmm`` and the address of ``mem``, which must be ``[sp+k]``."""
        if not self._xmm_reg(xmm):
            raise self._unsupported(opcode, dst, src)
        address = self._stack_address(mem)
        if address is None:
            raise self._unsupported(opcode, dst, src)
        return self.registers[xmm], address

    def _add_writable(self, dst):
        value = self.arg_to_lambda(dst)
        if not isinstance(value, SymbolicValue) or value.deref_count == 0:
            raise UnsupportedInstructionArgumentError(f"Unsupported mov destination: {dst}")
        address = value.ref()
        # pc-relative addresses should be writable
        if self.global_var(address):
            return
        constraint = WritableConstraint(address, self.bits)
        LOGGER.debug("constraint: %s", constraint)
        self.constraints.append(constraint)

    def _reject_vector(self, opcode, dst):
        """Vector registers only hold lanes, scalar handlers must not write them."""
        if self._xmm_reg(dst):
            raise UnsupportedInstructionArgumentError(f"{opcode} into vector register {dst}")

    def _xmm_reg(self, reg) -> bool:
        return self.classify(reg) is RegisterClass.VECTOR

    def _gpr64(self, reg) -> bool:
        return (
            self.classify(reg) in (RegisterClass.GENERAL, RegisterClass.STACK_POINTER)
            and reg.startswith("r")
            and reg not in self.aliases
        )

    @staticmethod
    def _unsupported(opcode, *args):
        return UnsupportedInstructionError(f"Unsupported instruction: {opcode} {', '.join(args)}")
