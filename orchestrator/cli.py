"""
CLI for the Orchestrator

Runs a single request through a locally built runtime and prints the result.

Examples:
    conductor "What is 17 plus 25?"
    conductor --agent web-helper "Summarize https://example.com"
    conductor --multi --max-agents 2 "Compare 3 and 5, then fetch https://example.com"
    conductor --stream "Tell me a short story"
    conductor --list-agents
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from agents.shared.config import Settings
from agents.shared.errors import ConductorError
from agents.shared.schemas import OrchestrationRequest, OrchestrationResult, ProgressUpdate

from .main import Runtime, build_runtime


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conductor",
        description="Route a request to the best agent and print its answer"
    )

    parser.add_argument(
        "request",
        nargs="?",
        help="Request text to submit"
    )

    parser.add_argument(
        "--agent",
        help="Run a specific agent by name or alias (skips routing)"
    )

    parser.add_argument(
        "--multi",
        action="store_true",
        help="Fan the request out to several agents"
    )

    parser.add_argument(
        "--max-agents",
        type=int,
        help="Maximum agents in multi-agent mode (default: MAX_AGENTS)"
    )

    parser.add_argument(
        "--max-steps",
        type=int,
        help="Maximum ReAct reasoning steps (default: REACT_MAX_STEPS)"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print progress events, including ReAct state transitions"
    )

    parser.add_argument(
        "--stream",
        action="store_true",
        help="Stream the answer as it is produced (single-agent mode only)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the OrchestrationResult as JSON"
    )

    parser.add_argument(
        "--list-agents",
        action="store_true",
        help="List registered agents and exit"
    )

    parser.add_argument(
        "--env-file",
        help="Path to a .env file (default: ./.env)"
    )

    return parser


async def print_progress(update: ProgressUpdate) -> None:
    print(f"[{update.event_type}] {update.message}", file=sys.stderr)


def format_agents(runtime: Runtime) -> str:
    lines = []
    for agent in runtime.registry.list_all():
        capabilities = agent.get_capabilities()
        marker = " (leader)" if capabilities.name == runtime.registry.leader_name else ""
        lines.append(f"{capabilities.name}{marker}")
        if capabilities.description:
            lines.append(f"  {capabilities.description}")
        if capabilities.aliases:
            lines.append(f"  aliases: {', '.join(capabilities.aliases)}")
        if capabilities.tools:
            lines.append(f"  tools: {', '.join(tool.name for tool in capabilities.tools)}")
    return "\n".join(lines)


def format_output(result: OrchestrationResult) -> str:
    """
    Format the final output.

    Args:
        result: Orchestration result
    """
    lines = []
    if result.status == "failed":
        lines.append(f"Error ({result.error_kind}): {result.error}")
    elif result.answer is not None:
        lines.append(result.answer)
    else:
        for outcome in result.outcomes:
            lines.append("=" * 60)
            lines.append(outcome.agent_name)
            lines.append("=" * 60)
            lines.append(outcome.final_answer if outcome.ok else f"Error: {outcome.error}")
            lines.append("")
    return "\n".join(lines).rstrip()


async def run_cli(args: argparse.Namespace) -> int:
    settings = Settings.from_env(args.env_file)
    runtime = await build_runtime(
        settings,
        progress_sink=print_progress if args.verbose else None,
        console_logging=args.verbose
    )

    try:
        if args.list_agents:
            print(format_agents(runtime))
            return 0

        request = OrchestrationRequest(
            message_type="orchestration_request",
            request=args.request,
            agent_name=args.agent,
            multi_agent=args.multi,
            max_agents=args.max_agents,
            max_steps=args.max_steps,
            react_verbose=args.verbose
        )

        if args.stream and not args.multi:
            try:
                async for chunk in runtime.orchestrator.stream_with_leader(request):
                    print(chunk, end="", flush=True)
            except ConductorError as e:
                print(f"\nError: {e}", file=sys.stderr)
                return 1
            print()
            return 0

        result = await runtime.request_handler.handle_request(request)
        if args.json:
            print(json.dumps(json.loads(result.to_json()), indent=2, ensure_ascii=False))
        else:
            print(format_output(result))
        return 0 if result.status == "completed" else 1
    finally:
        await runtime.shutdown()


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.list_agents and not args.request:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = asyncio.run(run_cli(args))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        exit_code = 130
    except ValueError as e:
        # Missing API key and similar configuration errors
        print(f"Configuration error: {e}", file=sys.stderr)
        exit_code = 2

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
