"""
agentloop CLI - Command-line front-end for the agent loop.

Commands:
    agentloop run "query"            Ask the agent a question
    agentloop run "query" --stream   Stream the final answer as it arrives
    agentloop tools                  List the tools bound to the agent
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Optional, TextIO

from .agent import Agent
from .callbacks import AgentCallbacks, logging_callbacks, merge_callbacks
from .config import AgentSettings
from .errors import AgentErrorResponse, get_user_friendly_message
from .exceptions import AgentLoopError
from .hello import default_tools
from .llm import create_model_client
from .models import SpanContext, ToolResult

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ConsoleReporter:
    """Writes run progress to a text stream (stderr by default)."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stderr

    def _write(self, text: str) -> None:
        print(text, file=self.stream, flush=True)

    def spinner_start(self, label: str) -> None:
        self._write(f"... {label}")

    def spinner_stop(self) -> None:
        pass

    def tool_start(self, ctx: SpanContext, name: str, args: dict[str, Any]) -> None:
        rendered = ", ".join(f"{k}={v!r}" for k, v in args.items())
        self._write(f"-> {name}({rendered})")

    def tool_end(self, ctx: SpanContext, name: str, outcome: ToolResult) -> None:
        if outcome.success:
            self._write(f"<- {name}: {outcome.title or 'ok'}")
        else:
            self._write(f"<- {name} failed: [{outcome.error.value}] {outcome.message}")

    def error(self, ctx: SpanContext, error: AgentErrorResponse) -> None:
        self._write(get_user_friendly_message(error.error, error.metadata))

    def callbacks(self) -> AgentCallbacks:
        return AgentCallbacks(
            on_spinner_start=self.spinner_start,
            on_spinner_stop=self.spinner_stop,
            on_tool_start=self.tool_start,
            on_tool_end=self.tool_end,
            on_error=self.error,
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def load_settings(args: argparse.Namespace) -> AgentSettings:
    """Layer environment, settings file and command-line flags."""
    settings = AgentSettings.from_env()
    if getattr(args, "config", None):
        settings = AgentSettings.from_yaml(args.config, base=settings)
    settings = settings.merged(
        provider=getattr(args, "provider", None),
        model=getattr(args, "model", None),
        max_iterations=getattr(args, "max_iterations", None),
        system_prompt=getattr(args, "system_prompt", None),
    )
    if getattr(args, "verbose", False):
        settings = settings.merged(log_level="debug")
    return settings.validate()


def build_agent(settings: AgentSettings, reporter: Optional[ConsoleReporter] = None) -> Agent:
    reporter = reporter or ConsoleReporter()
    return Agent(
        create_model_client(settings),
        tools=default_tools(),
        system_prompt=settings.system_prompt,
        max_iterations=settings.max_iterations,
        callbacks=merge_callbacks(
            reporter.callbacks(), logging_callbacks(include_errors=False)
        ),
    )


async def _stream_answer(agent: Agent, query: str) -> str:
    last = ""
    async for fragment in agent.run_stream(query):
        print(fragment, end="", flush=True)
        last = fragment
    print()
    return last


def cmd_run(args: argparse.Namespace) -> None:
    """Run the agent on a single query."""
    try:
        settings = load_settings(args)
    except AgentLoopError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.log_level)

    try:
        agent = build_agent(settings)
    except AgentLoopError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.stream:
        answer = asyncio.run(_stream_answer(agent, args.query))
    else:
        answer = asyncio.run(agent.run(args.query))
        print(answer)

    if answer.startswith("Error: "):
        sys.exit(1)


def cmd_tools(args: argparse.Namespace) -> None:
    """List the tools bound to the CLI agent."""
    print("Available Tools:\n")
    for t in default_tools():
        print(f"  {t.name}")
        print(f"    {t.description}")
        params = t.parameters.get("properties", {})
        if params:
            print(f"    Parameters: {', '.join(params)}")
        print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentloop",
        description="agentloop CLI - Run a tool-using LLM agent from the terminal",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Ask the agent a question")
    run_parser.add_argument("query", help="The question or instruction")
    run_parser.add_argument(
        "--stream",
        action="store_true",
        help="Stream the final answer",
    )
    run_parser.add_argument("--provider", help="Model provider (openai, anthropic, ...)")
    run_parser.add_argument("--model", help="Model name")
    run_parser.add_argument(
        "--max-iterations",
        type=int,
        dest="max_iterations",
        help="Maximum number of model calls per run",
    )
    run_parser.add_argument(
        "--system-prompt",
        dest="system_prompt",
        help="Override the default system prompt",
    )
    run_parser.add_argument("--config", help="Path to a YAML settings file")
    run_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log debug output to stderr",
    )
    run_parser.set_defaults(func=cmd_run)

    # Tools command
    tools_parser = subparsers.add_parser("tools", help="List available tools")
    tools_parser.set_defaults(func=cmd_tools)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    args.func(args)


if __name__ == "__main__":
    main()
