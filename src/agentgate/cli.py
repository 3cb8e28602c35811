"""
Command line entry point.

    agentgate                       interactive chat
    agentgate chat -m "message"     run a single turn
    agentgate settings              show persisted settings
    agentgate level normal          change the permission level
    agentgate allow|disallow TOOL   edit the permanently-allowed list
    agentgate blocklist ...         edit the command blocklist

Loosening operations (permissive level, disabling the blocklist) ask for a
yes/no confirmation first.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from agentgate.agent_loop import AgentLoop, TurnOutcome, TurnResult
from agentgate.approval import ApprovalGate, ConsoleApprovalGate
from agentgate.builtin_tools import create_default_tools
from agentgate.config import AgentConfig
from agentgate.llm import LLMClient
from agentgate.permissions import PermissionPolicy
from agentgate.prompts import build_system_prompt
from agentgate.safety import SecurityPolicy
from agentgate.session import Session
from agentgate.settings import JsonSettingsStore, SettingsError, SettingsStore
from agentgate.types import PermissionLevel

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit")


def build_agent(
    config: AgentConfig,
    approval_gate: ApprovalGate | None = None,
    store: SettingsStore | None = None,
    llm_client: LLMClient | None = None,
    working_directory: str | None = None,
) -> AgentLoop:
    """Wire up the whole stack: settings, policies, tools, client and loop."""
    working_directory = working_directory or os.getcwd()
    store = store or JsonSettingsStore(config.config_dir)
    security = SecurityPolicy(store)
    registry = create_default_tools()
    session = Session(
        system_prompt=build_system_prompt(registry, working_directory, config.custom_instructions),
        metadata={"model": config.llm.model},
    )
    return AgentLoop(
        session=session,
        llm_client=llm_client or LLMClient(config.llm, config.retry),
        registry=registry,
        permission_policy=PermissionPolicy(store, security),
        approval_gate=approval_gate or ConsoleApprovalGate(),
        config=config.loop,
        working_directory=working_directory,
        environment=dict(os.environ),
    )


def print_turn_result(result: TurnResult) -> None:
    if result.outcome == TurnOutcome.COMPLETED:
        marker = "[error]" if result.message_type == "error" else ""
        print(f"\n{marker}{' ' if marker else ''}{result.final_message or ''}")
    elif result.outcome == TurnOutcome.MAX_ITERATIONS:
        print(f"\nWarning: reached the iteration limit after {result.iterations} iterations.")
    else:
        print(f"\nError: {result.error}")


def run_chat(agent: AgentLoop, message: str | None) -> int:
    if message:
        result = agent.run_turn(message)
        print_turn_result(result)
        return 0 if result.completed else 1

    print("agentgate interactive session. Type 'exit' to quit.")
    while True:
        try:
            line = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not line:
            continue
        if line.lower() in EXIT_COMMANDS:
            break
        print_turn_result(agent.run_turn(line))

    agent.session.close()
    return 0


def show_settings(permissions: PermissionPolicy) -> None:
    settings = {
        "permissions": permissions.current_settings().to_dict(),
        "security": permissions.security.settings.to_dict(),
    }
    print(json.dumps(settings, indent=2))


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="agentgate - approval-gated LLM agent")
    parser.add_argument("--config-dir", default=None,
                        help="Directory holding permissions.json and security.json")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    chat_parser = subparsers.add_parser("chat", help="Chat with the agent (default)")
    chat_parser.add_argument("-m", "--message", help="Run a single turn with this message")

    subparsers.add_parser("settings", help="Show persisted settings")

    level_parser = subparsers.add_parser("level", help="Set the permission level")
    level_parser.add_argument("level", choices=[level.value for level in PermissionLevel])

    allow_parser = subparsers.add_parser("allow", help="Always allow a tool without approval")
    allow_parser.add_argument("tool")

    disallow_parser = subparsers.add_parser("disallow", help="Require approval for a tool again")
    disallow_parser.add_argument("tool")

    blocklist_parser = subparsers.add_parser("blocklist", help="Edit the command blocklist")
    blocklist_parser.add_argument("action", choices=["add", "remove", "enable", "disable"])
    blocklist_parser.add_argument("pattern", nargs="?",
                                  help="Substring, or /regex/ for a case-insensitive regex")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = AgentConfig.from_env()
    if args.config_dir:
        config.config_dir = Path(args.config_dir)

    store = JsonSettingsStore(config.config_dir)
    permissions = PermissionPolicy(store)
    gate = ConsoleApprovalGate()

    try:
        if args.command in (None, "chat"):
            agent = build_agent(config, approval_gate=gate, store=store)
            with agent.llm_client:
                return run_chat(agent, getattr(args, "message", None))

        if args.command == "settings":
            show_settings(permissions)
        elif args.command == "level":
            level = PermissionLevel(args.level)
            if level == PermissionLevel.PERMISSIVE and not gate.confirm_dangerous(
                "Switch to the permissive level (only high-risk operations need approval)"
            ):
                print("Cancelled.")
                return 1
            permissions.set_permission_level(level)
            print(f"Permission level set to {level.value}")
        elif args.command == "allow":
            permissions.add_to_permanently_allowed(args.tool)
            print(f"{args.tool} will run without approval")
        elif args.command == "disallow":
            permissions.remove_from_permanently_allowed(args.tool)
            print(f"{args.tool} requires approval again")
        elif args.command == "blocklist":
            return run_blocklist(permissions.security, gate, args.action, args.pattern)
    except SettingsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def run_blocklist(security: SecurityPolicy, gate: ApprovalGate, action: str, pattern: str | None) -> int:
    if action in ("add", "remove") and not pattern:
        print(f"blocklist {action} needs a pattern", file=sys.stderr)
        return 2

    if action == "add":
        security.add_to_blocklist(pattern)
        print(f"Added to blocklist: {pattern}")
    elif action == "remove":
        security.remove_from_blocklist(pattern)
        print(f"Removed from blocklist: {pattern}")
    elif action == "enable":
        security.toggle_blocklist(True)
        print("Blocklist enabled")
    else:
        if not gate.confirm_dangerous("Disable the command blocklist and risk checks"):
            print("Cancelled.")
            return 1
        security.toggle_blocklist(False)
        print("Blocklist disabled")
    return 0


if __name__ == "__main__":
    sys.exit(main())
