from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


OP_RIGHT = "MoveRight"
OP_LEFT = "MoveLeft"
OP_INC = "Increment"
OP_DEC = "Decrement"
OP_OUT = "Output"
OP_IN = "Input"
OP_JZ = "JumpIfZero"
OP_JNZ = "JumpIfNonZero"

JUMP_OPS = frozenset({OP_JZ, OP_JNZ})

# Source character for every non-jump opcode; brackets are handled by the loader.
COMMANDS: Dict[str, str] = {
    ">": OP_RIGHT,
    "<": OP_LEFT,
    "+": OP_INC,
    "-": OP_DEC,
    ".": OP_OUT,
    ",": OP_IN,
}

OP_CHARS: Dict[str, str] = {op: ch for ch, op in COMMANDS.items()}
OP_CHARS[OP_JZ] = "["
OP_CHARS[OP_JNZ] = "]"

UNMATCHED_CLOSE = "UnmatchedClose"
UNMATCHED_OPEN = "UnmatchedOpen"


class BFError(Exception):
    """Base class for interpreter errors."""


class BFParseError(BFError):
    """Raised when the bracket structure of a source text is invalid."""

    def __init__(self, kind: str, message: str, *, location: Optional["SourceLocation"] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.location = location


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int
    column: int
    char: str

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Instruction:
    op: str
    target: Optional[int] = None

    def __str__(self) -> str:
        ch = OP_CHARS[self.op]
        if self.target is not None:
            return f"{ch} (target: {self.target})"
        return ch


@dataclass(frozen=True)
class Program:
    instructions: Tuple[Instruction, ...]
    # Commentary and layout never make two programs differ.
    locations: Tuple[SourceLocation, ...] = field(default=(), compare=False, repr=False)
    filename: str = field(default="<string>", compare=False)

    def __len__(self) -> int:
        return len(self.instructions)

    def __getitem__(self, index: int) -> Instruction:
        return self.instructions[index]

    def __iter__(self):
        return iter(self.instructions)

    def location_of(self, pc: int) -> Optional[SourceLocation]:
        if 0 <= pc < len(self.locations):
            return self.locations[pc]
        return None

    def listing(self) -> str:
        """Render one line per instruction, e.g. ``0003: [ (target: 7)``."""
        lines: List[str] = []
        for index, inst in enumerate(self.instructions):
            loc = self.location_of(index)
            suffix = f"    ; line {loc.line}, col {loc.column}" if loc else ""
            lines.append(f"{index:04}: {inst}{suffix}")
        return "\n".join(lines)


class Loader:
    """Single-pass loader: decodes commands and resolves loop jump targets.

    Every character other than the eight commands is commentary. ``[`` is
    emitted with a placeholder target that is patched once its matching ``]``
    is seen, so the finished program carries mutual jump targets and the
    engine never has to re-scan for brackets.
    """

    def __init__(self, text: str, filename: str = "<string>") -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1

    def load(self) -> Program:
        self.index = 0
        self.line = 1
        self.column = 1
        code: List[Instruction] = []
        locations: List[SourceLocation] = []
        pending: List[int] = []
        code_append = code.append
        loc_append = locations.append
        commands = COMMANDS
        text = self.text
        n = len(text)

        while self.index < n:
            ch = text[self.index]
            op = commands.get(ch)
            if op is not None:
                code_append(Instruction(op))
                loc_append(self._location(ch))
            elif ch == "[":
                pending.append(len(code))
                code_append(Instruction(OP_JZ, 0))
                loc_append(self._location(ch))
            elif ch == "]":
                if not pending:
                    loc = self._location(ch)
                    raise BFParseError(
                        UNMATCHED_CLOSE,
                        f"Encountered ']' without corresponding '[' at {loc}",
                        location=loc,
                    )
                open_index = pending.pop()
                close_index = len(code)
                code[open_index] = Instruction(OP_JZ, close_index)
                code_append(Instruction(OP_JNZ, open_index))
                loc_append(self._location(ch))
            self._advance()

        if pending:
            loc = locations[pending[-1]]
            raise BFParseError(
                UNMATCHED_OPEN,
                f"Unbalanced '[' at {loc}: {len(pending)} bracket(s) never closed",
                location=loc,
            )
        return Program(instructions=tuple(code), locations=tuple(locations), filename=self.filename)

    def _location(self, ch: str) -> SourceLocation:
        return SourceLocation(self.filename, self.line, self.column, ch)

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1


def load(source: str, filename: str = "<string>") -> Program:
    return Loader(source, filename).load()
