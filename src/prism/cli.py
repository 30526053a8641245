"""Prism CLI — derive identities, inspect capabilities, run the access flow.

Usage:
    python -m prism.cli status
    python -m prism.cli derive-root --owner 0x52908400098527886E0F7030069857D2E4169EE7
    python -m prism.cli derive-context --root 0x... --index 0
    python -m prism.cli demo --owner 0x... --balance 500000000000 --threshold 10000000000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict

from prism.access.orchestrator import EncryptedAccess
from prism.config import PrismConfig
from prism.encryption.binder import CommitmentBinder
from prism.errors import PrismError
from prism.identity.derivation import derive_context_address, derive_root_address, hash_root_identity
from prism.ledger.memory import InMemoryLedger
from prism.logging_config import configure_logging
from prism.models.identity import PrivacyLevel
from prism.proofs.prover import SolvencyProver


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2))


def cmd_status(args: argparse.Namespace, config: PrismConfig) -> int:
    binder = CommitmentBinder(config)
    prover = SolvencyProver(config=config)
    binder.initialize()
    asyncio.run(prover.initialize())
    _print_json({
        "binder": binder.status().to_dict(),
        "prover": prover.status().to_dict(),
        "ledger": "web3" if config.ledger_configured else "memory",
        "allow_simulation": config.allow_simulation,
        "circuit": prover.circuit_info(),
    })
    return 0


def cmd_derive_root(args: argparse.Namespace, config: PrismConfig) -> int:
    root = derive_root_address(args.owner, config.program_seed)
    _print_json({
        "owner": args.owner,
        "root_address": root,
        "root_identity_hash": hash_root_identity(root),
    })
    return 0


def cmd_derive_context(args: argparse.Namespace, config: PrismConfig) -> int:
    _print_json({
        "root_address": args.root,
        "index": args.index,
        "context_address": derive_context_address(args.root, args.index),
    })
    return 0


async def _run_demo(args: argparse.Namespace, config: PrismConfig) -> Dict[str, Any]:
    access = EncryptedAccess.from_config(config, ledger=InMemoryLedger(program_seed=config.program_seed))
    result = await access.quick_access(
        args.owner, args.balance, args.threshold, PrivacyLevel[args.privacy.upper()],
    )
    root = await access.identity.get_root_identity(args.owner)
    revoked = await access.identity.revoke_context(root, result.context.context_index)
    again = await access.identity.revoke_context(root, result.context.context_index)
    summary = result.to_dict()
    summary["root_address"] = root.address
    summary["revocation"] = revoked.outcome.value
    summary["second_revocation"] = again.outcome.value
    return summary


def cmd_demo(args: argparse.Namespace, config: PrismConfig) -> int:
    _print_json(asyncio.run(_run_demo(args, config)))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prism",
        description="Prism — context identities and encrypted solvency proofs",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: .env in the working directory)",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show binder and prover capability status")

    # derive-root
    p_root = sub.add_parser("derive-root", help="Derive the root identity address of an owner")
    p_root.add_argument("--owner", required=True, help="Owner account address")

    # derive-context
    p_ctx = sub.add_parser("derive-context", help="Derive a context address")
    p_ctx.add_argument("--root", required=True, help="Root identity address")
    p_ctx.add_argument("--index", required=True, type=int, help="Context index (0-65535)")

    # demo
    p_demo = sub.add_parser("demo", help="Run the encrypted access flow on an in-memory ledger")
    p_demo.add_argument("--owner", required=True, help="Owner account address")
    p_demo.add_argument("--balance", required=True, type=int, help="Private balance")
    p_demo.add_argument("--threshold", required=True, type=int, help="Public threshold")
    p_demo.add_argument(
        "--privacy",
        default="high",
        choices=[level.name.lower() for level in PrivacyLevel],
        help="Root privacy level (default: high)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "derive-root": cmd_derive_root,
        "derive-context": cmd_derive_context,
        "demo": cmd_demo,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        config = PrismConfig.from_env(args.env_file)
        configure_logging(config.log_level, json_format=config.log_json)
        return handler(args, config)
    except PrismError as exc:
        print(f"Error [{exc.code}]: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
