from __future__ import annotations
import json
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

import numpy as np
from numpy.typing import NDArray

from extensions import HookRegistry, RuntimeServices, StepContext, build_default_services
from loader import (
    BFError,
    OP_CHARS,
    OP_DEC,
    OP_IN,
    OP_INC,
    OP_JNZ,
    OP_JZ,
    OP_LEFT,
    OP_OUT,
    OP_RIGHT,
    Instruction,
    Program,
    SourceLocation,
    load,
)
from ports import Reader, Writer


TAPE_SIZE = 30000
CELL_MODULUS = 256
DEFAULT_HISTORY = 16
# Cells shown either side of the pointer in verbose snapshots.
SNAPSHOT_RADIUS = 8

POINTER_OUT_OF_BOUNDS = "PointerOutOfBounds"
IO_FAILURE = "IOFailure"
EXTENSION_FAILURE = "ExtensionFailure"
INTERNAL = "Internal"


class BFRuntimeError(BFError):
    """Raised for runtime faults. ``kind`` tells the faults apart."""

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        pc: Optional[int] = None,
        pointer: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.location = location
        self.pc = pc
        self.pointer = pointer
        self.cause = cause
        self.step_index: Optional[int] = None


@dataclass
class StateEntry:
    step_index: int
    pc: int
    op: str
    pointer: int
    cell: int
    location: Optional[SourceLocation]
    tape_snapshot: Optional[Dict[str, Any]]


class StateLogger:
    """Keeps the most recent executed steps plus a running step count."""

    def __init__(self, verbose: bool, history: int = DEFAULT_HISTORY) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=history)
        self.step_count = 0

    def record(
        self,
        *,
        pc: int,
        op: str,
        pointer: int,
        cell: int,
        location: Optional[SourceLocation],
        tape_snapshot: Optional[Dict[str, Any]] = None,
    ) -> StateEntry:
        entry = StateEntry(
            step_index=self.step_count,
            pc=pc,
            op=op,
            pointer=pointer,
            cell=cell,
            location=location,
            tape_snapshot=tape_snapshot,
        )
        self.entries.append(entry)
        self.step_count += 1
        return entry

    @property
    def last_entry(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


class Interpreter:
    def __init__(
        self,
        program: Program,
        *,
        reader: Reader,
        writer: Writer,
        verbose: bool = False,
        services: Optional[RuntimeServices] = None,
        history: int = DEFAULT_HISTORY,
    ) -> None:
        self.program = program
        self.reader = reader
        self.writer = writer
        self.verbose = verbose
        self.services = services or build_default_services()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.history = history
        self._reset()

    @classmethod
    def from_source(cls, source: str, filename: str = "<string>", **kwargs: Any) -> "Interpreter":
        return cls(load(source, filename), **kwargs)

    def _reset(self) -> None:
        self.tape: NDArray[np.uint8] = np.zeros(TAPE_SIZE, dtype=np.uint8)
        self.pointer = 0
        self.pc = 0
        self.logger = StateLogger(verbose=self.verbose, history=self.history)

    @property
    def cell(self) -> int:
        return int(self.tape[self.pointer])

    @property
    def finished(self) -> bool:
        return self.pc >= len(self.program)

    def run(self) -> None:
        # Every run starts from a zeroed tape; nothing carries over.
        self._reset()
        try:
            self._emit_event("program_start", self, self.program)
            self._execute()
        except BFRuntimeError as error:
            self._attach_step(error)
            self._emit_event("on_error", self, error)
            raise
        except Exception as exc:
            # Convert unexpected Python-level exceptions so callers can format
            # them with the same traceback machinery.
            wrapped = BFRuntimeError(
                INTERNAL,
                f"Internal interpreter error: {exc}",
                location=self.program.location_of(self.pc),
                pc=self.pc,
                pointer=self.pointer,
                cause=exc,
            )
            self._attach_step(wrapped)
            self._emit_event("on_error", self, wrapped)
            raise wrapped from exc
        else:
            self._emit_event("program_end", self)

    def _execute(self) -> None:
        code = self.program.instructions
        n = len(code)
        tape = self.tape
        want_before = self.hook_registry.has_handlers("before_step")
        want_rules = self.hook_registry.has_step_rules
        emit_event = self._emit_event
        log_step = self._log_step

        while self.pc < n:
            inst = code[self.pc]
            if want_before:
                emit_event("before_step", self, inst)
            entry = log_step(inst)
            op = inst.op
            if op == OP_INC:
                tape[self.pointer] = (int(tape[self.pointer]) + 1) % CELL_MODULUS
            elif op == OP_DEC:
                tape[self.pointer] = (int(tape[self.pointer]) - 1) % CELL_MODULUS
            elif op == OP_RIGHT:
                self._move_pointer(1)
            elif op == OP_LEFT:
                self._move_pointer(-1)
            elif op == OP_JZ:
                if tape[self.pointer] == 0:
                    self.pc = inst.target  # type: ignore[assignment]
            elif op == OP_JNZ:
                if tape[self.pointer] != 0:
                    self.pc = inst.target  # type: ignore[assignment]
            elif op == OP_OUT:
                self._output()
            elif op == OP_IN:
                self._input()
            if want_rules:
                self._after_step(entry)
            self.pc += 1

    def _move_pointer(self, delta: int) -> None:
        # Rejected moves leave the pointer where it was.
        target = self.pointer + delta
        if not 0 <= target < TAPE_SIZE:
            direction = "right" if delta > 0 else "left"
            raise BFRuntimeError(
                POINTER_OUT_OF_BOUNDS,
                f"Pointer moved out of range: cannot move {direction} from cell {self.pointer} (tape is [0, {TAPE_SIZE}))",
                location=self.program.location_of(self.pc),
                pc=self.pc,
                pointer=self.pointer,
            )
        self.pointer = target

    def _output(self) -> None:
        try:
            self.writer.write(int(self.tape[self.pointer]))
        except Exception as exc:
            raise self._io_error("Output", exc) from exc

    def _input(self) -> None:
        try:
            value = self.reader.read()
        except Exception as exc:
            raise self._io_error("Input", exc) from exc
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or not 0 <= int(value) < CELL_MODULUS:
            raise BFRuntimeError(
                IO_FAILURE,
                f"Input port produced {value!r}, expected a cell value in [0, {CELL_MODULUS})",
                location=self.program.location_of(self.pc),
                pc=self.pc,
                pointer=self.pointer,
            )
        self.tape[self.pointer] = int(value)

    def _io_error(self, what: str, exc: Exception) -> BFRuntimeError:
        return BFRuntimeError(
            IO_FAILURE,
            f"{what} port failed: {exc.__class__.__name__}: {exc}",
            location=self.program.location_of(self.pc),
            pc=self.pc,
            pointer=self.pointer,
            cause=exc,
        )

    def _attach_step(self, error: BFRuntimeError) -> None:
        last = self.logger.last_entry
        if last is not None and error.step_index is None:
            error.step_index = last.step_index

    def snapshot(self, radius: int = SNAPSHOT_RADIUS) -> Dict[str, Any]:
        start = max(0, self.pointer - radius)
        end = min(TAPE_SIZE, self.pointer + radius + 1)
        return {"start": start, "cells": self.tape[start:end].tolist()}

    def _log_step(self, inst: Instruction) -> StateEntry:
        return self.logger.record(
            pc=self.pc,
            op=inst.op,
            pointer=self.pointer,
            cell=int(self.tape[self.pointer]),
            location=self.program.location_of(self.pc),
            tape_snapshot=self.snapshot() if self.verbose else None,
        )

    def _emit_event(self, event: str, *args: Any, **kwargs: Any) -> None:
        try:
            self.hook_registry.emit(event, *args, **kwargs)
        except BFRuntimeError:
            raise
        except Exception as exc:
            raise BFRuntimeError(
                EXTENSION_FAILURE,
                f"Extension hook '{event}' failed: {exc}",
                location=self.program.location_of(self.pc),
                pc=self.pc,
                pointer=self.pointer,
                cause=exc,
            ) from exc

    def _after_step(self, entry: StateEntry) -> None:
        try:
            self.hook_registry.after_step(
                self,
                StepContext(
                    step_index=entry.step_index,
                    pc=entry.pc,
                    op=entry.op,
                    pointer=self.pointer,
                    location=entry.location,
                ),
            )
        except BFRuntimeError:
            raise
        except Exception as exc:
            raise BFRuntimeError(
                EXTENSION_FAILURE,
                f"Extension step rule failed: {exc}",
                location=entry.location,
                pc=entry.pc,
                pointer=self.pointer,
                cause=exc,
            ) from exc


def run(
    program: Program,
    reader: Reader,
    writer: Writer,
    *,
    verbose: bool = False,
    services: Optional[RuntimeServices] = None,
) -> Interpreter:
    """Run ``program`` on a fresh tape and return the finished interpreter."""
    interpreter = Interpreter(program, reader=reader, writer=writer, verbose=verbose, services=services)
    interpreter.run()
    return interpreter


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def format_text(self, error: BFRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent step last):"]
        logger = self.interpreter.logger
        if logger.step_count > len(logger.entries):
            lines.append(f"  ... {logger.step_count - len(logger.entries)} earlier step(s) omitted")
        for entry in logger.entries:
            char = OP_CHARS.get(entry.op, "?")
            if entry.location:
                lines.append(
                    f"  File \"{entry.location.file}\", line {entry.location.line}, column {entry.location.column}, "
                    f"pc {entry.pc}: '{char}'"
                )
            else:
                lines.append(f"  <unknown location>, pc {entry.pc}: '{char}'")
            lines.append(f"    Step: {entry.step_index}  ptr={entry.pointer}  cell={entry.cell}")
            if verbose and entry.tape_snapshot is not None:
                start = entry.tape_snapshot["start"]
                cells = " ".join(f"{v:03}" for v in entry.tape_snapshot["cells"])
                lines.append(f"    Tape @{start}: {cells}")
        where = f"pc {error.pc}, pointer {error.pointer}" if error.pc is not None else "no step executed"
        lines.append(f"{error.kind}: {error.message} ({where})")
        return "\n".join(lines)

    def to_json(self, error: BFRuntimeError) -> str:
        steps_json: List[Dict[str, Any]] = []
        for entry in self.interpreter.logger.entries:
            item: Dict[str, Any] = {
                "step_index": entry.step_index,
                "pc": entry.pc,
                "op": entry.op,
                "pointer": entry.pointer,
                "cell": entry.cell,
            }
            if entry.location:
                item["source_location"] = {
                    "file": entry.location.file,
                    "line": entry.location.line,
                    "column": entry.location.column,
                }
            if entry.tape_snapshot is not None:
                item["tape_snapshot"] = entry.tape_snapshot
            steps_json.append(item)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "kind": error.kind,
                "message": error.message,
                "pc": error.pc,
                "pointer": error.pointer,
                "failing_step_index": error.step_index,
            },
            "steps": steps_json,
        }
        return json.dumps(data, indent=2)
