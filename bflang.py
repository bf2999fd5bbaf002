"""bflang command-line entry point."""
from __future__ import annotations
import argparse
import sys
from typing import BinaryIO, List, Optional, TextIO

from extensions import BFExtensionError, build_default_services, load_runtime_services
from interpreter import BFRuntimeError, Interpreter, TracebackFormatter
from loader import BFParseError, load
from ports import CODECS, StreamReader, make_writer


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bflang",
        description="Tape-language interpreter. Reads a program from a file, takes input from stdin and writes output to stdout.",
    )
    parser.add_argument("program", help="Source file path, or literal source with -source")
    parser.add_argument(
        "-c",
        "--codec",
        type=str.lower,
        choices=sorted(CODECS),
        default="ascii",
        help="Output format, case-insensitive (default: ascii)",
    )
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("--dump", action="store_true", help="Print the decoded instruction listing instead of running")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Record tape snapshots and show them in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--eof-error", action="store_true", help="Fail when reading past end of input instead of reading 0")
    parser.add_argument("-ext", "--ext", dest="extensions", action="append", default=[], metavar="PATH", help="Load an extension file or .bfx list (repeatable)")
    return parser


def run_cli(
    argv: Optional[List[str]] = None,
    *,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    args = build_arg_parser().parse_args(argv)
    stdin = stdin if stdin is not None else sys.stdin.buffer
    stdout = stdout if stdout is not None else sys.stdout

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            # Undecodable bytes can only sit in commentary.
            with open(filename, "r", encoding="utf-8", errors="replace") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    try:
        program = load(source_text, filename)
    except BFParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return 1

    if args.dump:
        print(program.listing(), file=stdout)
        return 0

    try:
        services = load_runtime_services(args.extensions) if args.extensions else build_default_services()
    except BFExtensionError as error:
        print(f"ExtensionError: {error}", file=sys.stderr)
        return 1

    reader = StreamReader(stdin, eof_value=None if args.eof_error else 0)
    writer = make_writer(args.codec, stdout, flush=True)
    interpreter = Interpreter(program, reader=reader, writer=writer, verbose=args.verbose, services=services)
    try:
        interpreter.run()
    except BFRuntimeError as error:
        # Keep whatever the program printed before failing.
        stdout.flush()
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    stdout.flush()
    return 0


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
