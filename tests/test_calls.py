import pytest

from gadget_modeling.calls import CallClassifier, CallVerdict, Predicate
from gadget_modeling.result import FailureKind


@pytest.mark.parametrize("target", ["execve", "0xe4e30 <execve>", "execl", "posix_spawn", "e4ee0 <__execve>"])
def test_terminal_call_resolves_program_counter(emulator, target):
    reg = "rdi" if emulator.bits == 64 else "eax"
    emulator.process_line(f"mov {reg}, [{reg}]")
    result = emulator.process_line(f"call {target}")
    assert result.ok
    assert emulator.target == target
    assert emulator.registers[emulator.pc] == target


def test_sigprocmask_changes_nothing(emulator):
    before = dict(emulator.registers)
    result = emulator.process_line("call sigprocmask")
    assert result.ok
    assert dict(emulator.registers) == before
    assert emulator.target is None


def test_unsetenv_needs_global_variable(amd64):
    assert amd64.process_line("call unsetenv").failure is FailureKind.UNRESOLVED_CALL

    amd64.process_line("lea rdi, [rip+0x1b3d2c]")
    assert amd64.process_line("call unsetenv").ok


def test_unsetenv_on_stack_arguments(i386):
    assert not i386.process_line("call unsetenv").ok

    i386.process_line("lea eax, [ebx-0x1234]")
    i386.process_line("push eax")
    assert i386.process_line("call unsetenv").ok


def test_i386_global_variable_is_got_relative(i386):
    assert i386.global_var(i386.arg_to_lambda("[ebx-0x1234]").ref())
    assert not i386.global_var(i386.arg_to_lambda("[ebx-0x1234]"))
    assert not i386.global_var(i386.arg_to_lambda("[eax+0x10]").ref())

    i386.process_line("mov ebx, [esp]")
    i386.process_line("lea eax, [ebx+0x8]")
    i386.process_line("push eax")
    assert i386.process_line("call unsetenv").failure is FailureKind.UNRESOLVED_CALL


def test_sigaction_needs_global_and_zero(amd64):
    amd64.process_line("lea rsi, [rip+0x10]")
    assert amd64.process_line("call __sigaction").failure is FailureKind.UNRESOLVED_CALL
    amd64.process_line("xor edx, edx")
    assert amd64.process_line("call __sigaction").ok


def test_unknown_call_is_unresolved(amd64):
    result = amd64.process_line("call system")
    assert not result.ok
    assert result.failure is FailureKind.UNRESOLVED_CALL


def test_classifier_with_custom_table(amd64):
    classifier = CallClassifier(terminal=("system",), benign={"puts": {0: Predicate.ZERO}})
    assert classifier.classify("call <system>", amd64) is CallVerdict.TERMINAL
    assert classifier.classify("puts", amd64) is CallVerdict.UNRESOLVED
    amd64.process_line("xor edi, edi")
    assert classifier.classify("puts", amd64) is CallVerdict.BENIGN
