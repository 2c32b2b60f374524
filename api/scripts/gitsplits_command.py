#!/usr/bin/env python3
"""Run one GitSplits chat command locally, without the HTTP server.

Usage:
  python scripts/gitsplits_command.py "analyze near/near-sdk-rs" [--author NAME] [--channel web]
      [--near-account ACCOUNT] [--store PATH] [--route-only] [-v]

Notes:
- Tools are built from the same environment as the API (GITHUB_TOKEN, REPUTATION_API_BASE, ...)
- --store sets the split ledger JSON file so splits, wallets and claims survive between runs
- Each invocation is a fresh conversation, so plans cannot be approved across runs
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

_api_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _api_dir)

from app.main import build_tools  # noqa: E402
from app.models.agent import AgentMessage  # noqa: E402
from app.services.agent_routing_service import (  # noqa: E402
    AgentRoutingConfig,
    build_agent_routing_plan,
    format_routing_summary,
)
from app.services.command_service import CommandService, CommandSettings  # noqa: E402
from app.services.gitsplits_intents import build_default_agent  # noqa: E402

log = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Run a GitSplits command against local tools")
    ap.add_argument("text", help='Command text, e.g. "pay 10 NEAR to owner/repo"')
    ap.add_argument("--author", default="cli", help="Message author (default: cli)")
    ap.add_argument("--channel", default="web", help="Channel the command arrives on (default: web)")
    ap.add_argument("--near-account", default=None, help="Connected NEAR account of the author")
    ap.add_argument(
        "--store",
        default=None,
        help="Split ledger JSON path (default: SPLIT_STORE_PATH, else in-memory only)",
    )
    ap.add_argument("--route-only", action="store_true", help="Print the routing decision and exit")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    config = AgentRoutingConfig.from_env()
    routing = build_agent_routing_plan(args.text, config)
    print(f"[route] {format_routing_summary(routing)}")
    if args.route_only:
        return 0

    env = dict(os.environ)
    if args.store:
        env["SPLIT_STORE_PATH"] = args.store
    service = CommandService(build_default_agent(build_tools(env)), CommandSettings.from_env(env))
    message = AgentMessage(
        text=args.text,
        author=args.author,
        channel=args.channel,
        near_account_id=args.near_account,
    )
    log.debug("Running %r for %s", args.text, args.author)
    print(service.handle(message))
    return 0


if __name__ == "__main__":
    sys.exit(main())
