import argparse
import asyncio
import os
import sys
from pathlib import Path

from docshell.shell_config import ShellConfig
from docshell.shell_printer import Printer
from docshell.shell_runtime import ExecutionResult, ScriptRunner

try:
    import readline
except ImportError:  # Windows
    readline = None


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, input, prompt)


def _load_history(path: str):
    if readline is None:
        return
    try:
        readline.read_history_file(path)
    except OSError:
        print(f"Couldn't load history file: {path}", file=sys.stderr)


def _save_history(path: str):
    if readline is None:
        return
    try:
        readline.write_history_file(path)
    except OSError:
        pass


def print_result(result: ExecutionResult, printer: Printer):
    # Side effects come first, in emission order
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))
        elif effect.get('topics') == ['stderr'] and effect.get('message') != result.error_message:
            print(effect.get('message', ''), file=sys.stderr)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return
    if result.value is not None:
        print(printer.pformat(result.value))


async def run_script_file(file_path: str, config: ShellConfig) -> int:
    """Run a script file non-interactively; returns the exit status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        return 1
    printer = Printer(fmt=config.output_format)
    with ScriptRunner.from_config(config) as runner:
        result = await runner.handle_script(source, source_name=str(p))
        print_result(result, printer)
    return 1 if result.status == 'error' else 0


async def _show(runner: ScriptRunner, what: str):
    source = {"collections": "db.listCollections()", "databases": "db.listDatabases()"}.get(what)
    if source is None:
        print(f"Error: unknown show target: {what}", file=sys.stderr)
        return
    result = await runner.handle_script(source)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return
    for name in result.value or []:
        print(name)


async def repl(config: ShellConfig, runner: ScriptRunner = None):
    """Interactive loop: `use`, `show`, `run` and `exit` commands, everything else is a script."""
    runner = runner or ScriptRunner.from_config(config)
    printer = Printer(fmt=config.output_format)
    history = os.path.expanduser(config.history_file)
    _load_history(history)

    print("docshell Shell")
    print(f"Connecting to: {runner.session.uri}")
    print("")

    allow_break = False
    try:
        while True:
            try:
                raw = await ainput(f"{runner.session.database_name}> ")
            except EOFError:
                print("\nExiting.")
                break
            except KeyboardInterrupt:
                if allow_break:
                    break
                allow_break = True
                print("\n(press Ctrl+C again to exit)")
                continue
            allow_break = False
            line = raw.strip()
            if not line:
                continue
            _save_history(history)
            if line == "exit":
                break

            source, source_name = line, "<script>"
            if line.startswith("use "):
                runner.use(line.split(None, 1)[1].strip())
                continue
            if line.startswith("show "):
                await _show(runner, line.split(None, 1)[1].strip())
                continue
            if line.startswith("run "):
                file = line.split(None, 1)[1].strip()
                try:
                    source = Path(file).read_text(encoding="utf-8")
                except OSError as e:
                    print(f"Error running {file}: {e}", file=sys.stderr)
                    continue
                source_name = file

            result = await runner.handle_script(source, source_name=source_name)
            print_result(result, printer)
    finally:
        runner.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docshell", description="Document-store shell over an operation bridge.")
    parser.add_argument("script", nargs="?", help="script file to run instead of the interactive shell")
    parser.add_argument("--host", help="backend host (default: localhost)")
    parser.add_argument("--port", type=int, help="backend port (default: 27017)")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--backend", choices=["mongo", "http"], help="executor behind the bridge")
    parser.add_argument("--url", dest="backend_url", help="base URL for the http backend")
    parser.add_argument("--timeout", dest="op_timeout", type=float, help="per-operation timeout in seconds")
    parser.add_argument("--format", dest="output_format", choices=["json", "yaml"], help="result format")
    return parser


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if k not in ("script", "config")}
    try:
        config = ShellConfig.load(args.config, overrides)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    if args.script:
        return await run_script_file(args.script, config)
    await repl(config)
    return 0


def cli():
    try:
        raise SystemExit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    cli()
