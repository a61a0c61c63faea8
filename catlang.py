import argparse
import asyncio
import sys
from pathlib import Path

from catlang.cat_runtime import ScriptRunner
from catlang.cat_printer import display
from catlang.cat_serialize import serialize
from catlang.cat_trace import format_trace

# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="catlang", description="A simple concatenative golf language")
    ap.add_argument("file", nargs="?", help="script file to run; starts the REPL when omitted")
    ap.add_argument("-c", "--code", help="executes a string directly")
    ap.add_argument("-t", "--trace", action="store_true", help="traces the entire execution")
    ap.add_argument("-w", "--whitespace", action="store_true",
                    help="treat whitespace as one-character string literals")
    ap.add_argument("--trace-format", choices=("text", "json", "yaml"), default="text",
                    help="output format of the trace")
    ap.add_argument("--show-commands", action="store_true", help="print the parsed instructions")
    return ap


def run_source(source: str, args) -> int:
    """Run one program non-interactively and return the process exit status."""
    runner = ScriptRunner(trace=args.trace, significant_whitespace=args.whitespace)
    if args.trace and args.trace_format == "text":
        # Stream frames as each top-level instruction completes.
        runner.on_frames = lambda frames: print(format_trace(frames))
    result = runner.handle_script(source)
    if args.show_commands:
        print(result.instructions)
    if args.trace and args.trace_format != "text":
        print(serialize(result.trace, fmt=args.trace_format))
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return 1
    if result.value is not None:
        print(display(result.value))
    return 0


async def main(argv=None):
    """Run a script file or `-c` code when provided, otherwise start the interactive REPL."""
    args = build_arg_parser().parse_args(argv)
    if args.code is not None:
        raise SystemExit(run_source(args.code, args))
    if args.file:
        p = Path(args.file)
        try:
            source = p.read_text(encoding="utf-8")
        except FileNotFoundError:
            print(f"Error: file not found: {args.file}", file=sys.stderr)
            raise SystemExit(1)
        raise SystemExit(run_source(source, args))

    print("Catlang REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(trace=args.trace, significant_whitespace=args.whitespace)

    # REPL Loop
    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.rstrip("\n")

            if not line.strip():
                continue
            if line.strip() == "exit":
                break

            result = runner.handle_script(line)

            if args.trace:
                print(format_trace(result.trace))

            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            if result.value is not None:
                print(display(result.value))

        except EOFError:
            print("\nExiting.")
            break


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
