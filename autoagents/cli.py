"""Command-line interface for managing recipe-based auto-agents."""
from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import sys
from typing import Optional, Sequence

import uvicorn

from autoagents.core.errors import AgentNotFoundError
from autoagents.core.models import AgentState, RunRecord
from autoagents.host import AgentHost
from autoagents.logging_utils import setup_logging
from autoagents.runtime import get_config, get_host

logger = logging.getLogger(__name__)

SHELL_PROMPT = "autoagents> "
SHELL_EXIT_WORDS = {"exit", "quit"}
# Commands that only make sense from the outer process.
TOP_LEVEL_ONLY = {"shell", "serve"}


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer") from None
    if number <= 0:
        raise argparse.ArgumentTypeError("interval must be greater than zero seconds")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autoagents",
        description="Manage recipe-based background agents.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Console log level (defaults to AUTOAGENTS_LOG_LEVEL or INFO)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("dir", help="Show the recipe directory")

    create = commands.add_parser("create", help="Write a new recipe and start it")
    create.add_argument("name")
    create.add_argument("seconds", type=positive_int, help="Interval between runs")
    create.add_argument("instructions", nargs="+", help="What the agent should do each run")

    commands.add_parser("templates", help="List built-in recipe templates")

    scaffold = commands.add_parser("scaffold", help="Create a recipe from a template")
    scaffold.add_argument("template")
    scaffold.add_argument("name", nargs="?", default=None)

    commands.add_parser("reload", help="Re-read the recipe directory")

    for command, text in (
        ("start", "Start an agent's schedule"),
        ("stop", "Stop an agent's schedule"),
        ("run", "Run an agent once, right now"),
    ):
        sub = commands.add_parser(command, help=text)
        sub.add_argument("name")

    remove = commands.add_parser("remove", help="Stop an agent and delete its recipe")
    remove.add_argument("name")
    remove.add_argument(
        "--keep-file",
        action="store_true",
        help="Unregister the agent but leave its recipe file on disk",
    )

    commands.add_parser("list", help="List registered agents")

    results = commands.add_parser("results", help="Show recent run results")
    results.add_argument("name", nargs="?", default=None)

    commands.add_parser("shell", help="Interactive session that keeps agents running")

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def format_agent(state: AgentState) -> str:
    recipe = state.recipe
    line = (
        f"  {recipe.name} [{state.status.name.lower()}] every {recipe.interval_secs}s"
        f" | tools: {recipe.tools.describe()}"
    )
    trigger = recipe.trigger_summary()
    if trigger:
        line += f" | trigger: {trigger}"
    if state.last_result is not None:
        line += f" | last: {state.last_result.summary(60)}"
    return line


def format_record(record: RunRecord) -> str:
    stamp = record.finished_at.strftime("%Y-%m-%d %H:%M:%S")
    verdict = "ok" if record.result.ok else "failed"
    return f"  {stamp} {record.agent} ({record.trigger}, {record.duration:.1f}s) {verdict}: {record.result.summary()}"


class CommandRunner:
    """Executes parsed commands against an :class:`AgentHost`.

    With ``persistent`` False (one-shot invocations) freshly created agents are
    written but not scheduled, since the process exits right after.
    """

    def __init__(self, host: AgentHost, *, persistent: bool = False) -> None:
        self.host = host
        self.persistent = persistent

    async def execute(self, args: argparse.Namespace) -> int:
        handler = getattr(self, f"_cmd_{args.command}", None)
        if handler is None:
            print(f"error: '{args.command}' is not available here")
            return 1
        try:
            return await handler(args)
        except (AgentNotFoundError, KeyError) as exc:
            print(f"error: {exc.args[0] if exc.args else exc}")
        except (FileExistsError, ValueError, OSError) as exc:
            print(f"error: {exc}")
        return 1

    async def _cmd_dir(self, args: argparse.Namespace) -> int:
        print(f"Agent recipe directory: {self.host.recipe_dir}")
        return 0

    async def _cmd_create(self, args: argparse.Namespace) -> int:
        instructions = " ".join(args.instructions).strip()
        state = await self.host.create(args.name, args.seconds, instructions, start=self.persistent)
        print(f"Created auto-agent '{state.name}' (every {state.recipe.interval_secs}s) at {state.recipe.path}")
        if state.running:
            print(f"Task '{state.name}' started.")
        return 0

    async def _cmd_templates(self, args: argparse.Namespace) -> int:
        print("Available auto-agent templates:")
        for template in self.host.templates():
            print(f"  {template.id} -- {template.description} [{template.interval_secs}s default]")
        return 0

    async def _cmd_scaffold(self, args: argparse.Namespace) -> int:
        state = await self.host.scaffold(args.template, args.name, start=self.persistent)
        print(f"Scaffolded '{state.name}' from template '{args.template}' at {state.recipe.path}")
        if state.running:
            print(f"Task '{state.name}' started.")
        return 0

    async def _cmd_reload(self, args: argparse.Namespace) -> int:
        summary = await self.host.reload(auto_start=self.persistent)
        print(f"Loaded {len(summary.report.recipes)} recipe-based auto-agent(s).")
        for filename, error in summary.report.errors:
            print(f"  skipped {filename}: {error}")
        for name in summary.removed:
            print(f"  removed {name}: recipe no longer present")
        return 0

    async def _cmd_start(self, args: argparse.Namespace) -> int:
        state = await self.host.start(args.name)
        print(f"Task '{state.name}' started (every {state.recipe.interval_secs}s).")
        if not self.persistent:
            print("Running in the foreground; press Ctrl-C to stop.")
            await asyncio.Event().wait()
        return 0

    async def _cmd_stop(self, args: argparse.Namespace) -> int:
        state = await self.host.stop(args.name)
        print(f"Task '{state.name}' stopped.")
        return 0

    async def _cmd_run(self, args: argparse.Namespace) -> int:
        record = await self.host.run(args.name)
        if record is None:
            print(f"Agent '{args.name}' has no instructions; nothing to run.")
            return 0
        if record.result.ok:
            print(record.result.output)
            return 0
        print(f"error: run failed: {record.result.error}")
        return 1

    async def _cmd_remove(self, args: argparse.Namespace) -> int:
        summary = await self.host.remove(args.name, delete_recipe=not args.keep_file)
        if summary.was_running:
            print(f"Task '{summary.name}' stopped.")
        if summary.deleted_file is not None:
            print(f"Removed auto-agent '{summary.name}' and deleted {summary.deleted_file}")
        else:
            print(f"Removed auto-agent '{summary.name}'; recipe file kept.")
        return 0

    async def _cmd_list(self, args: argparse.Namespace) -> int:
        agents = self.host.agents()
        if not agents:
            print(f"No auto-agents registered. Add recipes to {self.host.recipe_dir}")
            return 0
        print(f"{len(agents)} auto-agent(s):")
        for state in agents:
            print(format_agent(state))
        return 0

    async def _cmd_results(self, args: argparse.Namespace) -> int:
        records = self.host.history(args.name)
        if not records:
            print("No runs recorded yet.")
            return 0
        for record in records:
            print(format_record(record))
        return 0


async def run_command(args: argparse.Namespace) -> int:
    """One-shot invocation: load recipes without scheduling, run, shut down."""
    host = get_host()
    config = get_config()
    await host.startup(auto_start=False)
    try:
        return await CommandRunner(host).execute(args)
    finally:
        await host.shutdown(config.shutdown_grace)


async def run_shell(parser: argparse.ArgumentParser) -> int:
    """Interactive session; agents keep running between commands."""
    host = get_host()
    config = get_config()
    summary = await host.startup()
    runner = CommandRunner(host, persistent=True)
    print(f"Loaded {len(summary.report.recipes)} recipe-based auto-agent(s). Type 'exit' to leave.")
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, SHELL_PROMPT)
            except EOFError:
                break
            try:
                words = shlex.split(line)
            except ValueError as exc:
                print(f"error: {exc}")
                continue
            if not words:
                continue
            if words[0] in SHELL_EXIT_WORDS:
                break
            try:
                args = parser.parse_args(words)
            except SystemExit:
                continue
            if args.command in TOP_LEVEL_ONLY:
                print(f"error: '{args.command}' is not available inside the shell")
                continue
            await runner.execute(args)
    finally:
        await host.shutdown(config.shutdown_grace)
    return 0


def serve(host: str, port: int, log_level: str) -> int:
    uvicorn.run("autoagents.main:app", host=host, port=port, log_level=log_level.lower())
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = get_config()
    level = (args.log_level or config.log_level).upper()
    setup_logging(level, config.logs_dir)

    if args.command == "serve":
        return serve(args.host, args.port, level)
    try:
        if args.command == "shell":
            return asyncio.run(run_shell(parser))
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
