"""bflang extension: execution trace on stderr.

Every ``BF_TRACE_EVERY`` steps (default 1000) a line ``step pc op ptr cell``
is written to stderr. When the program ends, successfully or not, a summary of
the nonzero tape cells follows.
"""

from __future__ import annotations

import os
import sys
from typing import Any, List

import numpy as np

from extensions import ExtensionAPI, StepContext


BF_LANG_EXTENSION_NAME = "trace"
BF_LANG_EXTENSION_API_VERSION = 1

# Cap on cells listed in the summary.
SUMMARY_LIMIT = 32


def _every() -> int:
    raw = os.environ.get("BF_TRACE_EVERY", "1000")
    try:
        every = int(raw)
    except ValueError:
        every = 1000
    return max(every, 1)


def tape_summary(tape: Any, limit: int = SUMMARY_LIMIT) -> str:
    nonzero = np.flatnonzero(tape)
    if nonzero.size == 0:
        return "tape: all cells zero"
    shown: List[str] = [f"{int(i)}={int(tape[i])}" for i in nonzero[:limit]]
    more = "" if nonzero.size <= limit else f" ... (+{nonzero.size - limit} more)"
    return f"tape: {nonzero.size} nonzero cell(s), max={int(tape.max())}: " + " ".join(shown) + more


def bf_lang_register(ext: ExtensionAPI) -> None:
    ext.metadata(name=BF_LANG_EXTENSION_NAME, version="0.1.0")

    @ext.every_n_steps(_every(), name="trace_step")
    def _trace_step(interpreter: Any, ctx: StepContext) -> None:
        print(
            f"[trace] step={ctx.step_index} pc={ctx.pc} op={ctx.op} ptr={ctx.pointer} cell={interpreter.cell}",
            file=sys.stderr,
        )

    @ext.on_event("program_end")
    def _on_end(interpreter: Any) -> None:
        print(f"[trace] finished after {interpreter.logger.step_count} step(s); {tape_summary(interpreter.tape)}", file=sys.stderr)

    @ext.on_event("on_error")
    def _on_error(interpreter: Any, error: Any) -> None:
        print(f"[trace] {error.kind} after {interpreter.logger.step_count} step(s); {tape_summary(interpreter.tape)}", file=sys.stderr)
