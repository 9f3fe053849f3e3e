import json
from datetime import datetime


class TraceRecord:
    def __init__(self, arch=None, source=None):
        self.trace_info = {
            "timestamp": datetime.now().isoformat(),
            "arch": arch,
            "source": source,
            "steps": [],
            "result": None,
            "final_state": None,
        }

    def add_step(self, instruction, emulator):
        """
        Record instruction and emulator state

        Args:
            instruction: Instruction object
            emulator: Emulator after processing the instruction
        """
        step = {
            "address": instruction.address,
            "instruction": str(instruction),
            "registers": self._serialize_registers(emulator.registers),
            "constraints_count": len(emulator.constraints),
        }
        self.trace_info["steps"].append(step)

    def set_final_state(self, result, emulator):
        """
        Set final state of the execution

        Args:
            result: RunResult of the emulation
            emulator: Final emulator state
        """
        self.trace_info["result"] = result.to_json()
        self.trace_info["final_state"] = {
            "registers": self._serialize_registers(emulator.registers),
            "stack": self._serialize_stack(emulator.stack),
            "constraints": [str(c) for c in emulator.constraints],
        }

    def _serialize_registers(self, registers):
        """Convert the written registers to serializable format"""
        result = {}
        for name, value in dict.items(registers):
            if isinstance(value, list):
                result[name] = [str(lane) for lane in value]
            else:
                result[name] = str(value)
        return result

    def _serialize_stack(self, stack):
        """Convert stack cells to serializable format"""
        return {hex(addr): str(value) for addr, value in sorted(stack.items())}


def save_trace(trace_record, filename):
    """
    Save trace record to file

    Args:
        trace_record: TraceRecord object
        filename: Output filename
    """
    with open(filename, "w") as f:
        json.dump(trace_record.trace_info, f, indent=2)
