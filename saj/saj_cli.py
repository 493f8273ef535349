import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from saj.saj_config import SajConfig, load_config
from saj.saj_effects import create_effect_handler
from saj.saj_llm import MessagesClient
from saj.saj_printer import Printer
from saj.saj_runtime import ExecutionResult, ProgramRunner

BANNER = "SAJ REPL v0.1"


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def build_handler(config: Optional[SajConfig] = None):
    """An effect dispatcher for the config, with a model client when credentials are present."""
    config = config or load_config()
    client = None
    if config.has_credentials:
        client = MessagesClient(config.api_key, token=config.token, base_url=config.api_url)
    return create_effect_handler(config, llm_client=client)


def _print_outcome(result: ExecutionResult, printer: Printer) -> None:
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(printer.pformat(effect.get('message')))
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return
    if result.value is not None:
        print(printer.pformat(result.value))


async def run_program_file(file_path: str, config: Optional[SajConfig] = None) -> ExecutionResult:
    """Run a JSON/YAML program file non-interactively and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    config = config or load_config()
    if config.base_dir is None:
        config.base_dir = str(p.parent.resolve())
    runner = ProgramRunner(build_handler(config))
    result = await runner.handle_program(source)
    _print_outcome(result, Printer())
    if result.status == 'error':
        raise SystemExit(1)
    return result


async def main(argv: Optional[List[str]] = None):
    """Run a program file when provided, otherwise start the interactive REPL."""
    argv = sys.argv[1:] if argv is None else argv
    if argv and not argv[0].startswith("-"):
        await run_program_file(argv[0])
        return

    print(BANNER)
    print("Enter one JSON program per line. Type 'exit' or press Ctrl+D to quit.")

    runner = ProgramRunner(build_handler())
    printer = Printer()

    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = await runner.handle_program(line)
            _print_outcome(result, printer)

        except EOFError:
            print("\nExiting.")
            break


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    run()
