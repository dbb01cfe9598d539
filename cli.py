#!/usr/bin/env python3
"""Command line access to the confidential bridge"""

import argparse
import asyncio
import sys
from typing import List, Optional

from confidential_bridge.config import settings
from confidential_bridge.core.encryption import short_handle
from confidential_bridge.core.errors import BridgeError
from confidential_bridge.core.session import ActionResult, BridgeOrchestrator
from confidential_bridge.logging_config import setup_logging
from confidential_bridge.services.bridge import build_mock_orchestrator, build_orchestrator


def print_result(result: ActionResult) -> None:
    """Print the status line and whatever the action produced"""
    print(result.status_line())
    if result.request is not None:
        handles = ", ".join(short_handle(h) for h in result.request.handles)
        print(f"   Oracle request {result.request.request_id} for {result.request.contract_caller}: {handles}")
    if result.snapshot is not None:
        print(f"   Ciphertext: {short_handle(result.snapshot.confidential_handle)}")
    for warning in result.warnings:
        print(f"⚠️  {warning}")


async def cli_list_assets(orchestrator: BridgeOrchestrator) -> None:
    for asset in orchestrator.list_assets():
        print(f"{asset.key.upper()} ({asset.label}, {asset.decimals} decimals)")
        print(f"   underlying:   {asset.underlying_address}")
        print(f"   confidential: {asset.confidential_address}")


async def cli_mint(orchestrator: BridgeOrchestrator, token: str, amount: str, to: Optional[str]) -> None:
    asset = orchestrator.registry.resolve(token)
    print(f"Minting {amount} {asset.symbol} to {to or 'signer'}...")
    print_result(await orchestrator.mint(asset.key, asset.parse_units(amount), to=to))


async def cli_wrap(orchestrator: BridgeOrchestrator, token: str, amount: str, recipient: Optional[str]) -> None:
    asset = orchestrator.registry.resolve(token)
    print(f"Wrapping {amount} {asset.symbol} for {recipient or 'signer'}...")
    print_result(await orchestrator.wrap(asset.key, asset.parse_units(amount), recipient=recipient))


async def cli_unwrap(
    orchestrator: BridgeOrchestrator,
    token: str,
    amount: str,
    from_: Optional[str],
    recipient: Optional[str],
) -> None:
    asset = orchestrator.registry.resolve(token)
    print(f"Unwrapping {amount} {asset.symbol} to {recipient or 'signer'}...")
    await orchestrator.initialize()
    print_result(await orchestrator.unwrap(asset.key, asset.parse_units(amount), from_=from_, recipient=recipient))


async def cli_decrypt_balance(orchestrator: BridgeOrchestrator, token: str, holder: Optional[str]) -> None:
    asset = orchestrator.registry.resolve(token)
    await orchestrator.initialize()
    print_result(await orchestrator.decrypt_balance(asset.key, holder=holder))


async def cli_demo(orchestrator: BridgeOrchestrator, token: str) -> None:
    """Mint, wrap, decrypt and unwrap against the in-process ledger"""
    asset = orchestrator.registry.resolve(token)
    await orchestrator.initialize()
    steps = [
        ("mint 250", lambda: orchestrator.mint(asset.key, asset.parse_units("250"))),
        ("wrap 42", lambda: orchestrator.wrap(asset.key, asset.parse_units("42"))),
        ("decrypt", lambda: orchestrator.decrypt_balance(asset.key)),
        ("unwrap 5", lambda: orchestrator.unwrap(asset.key, asset.parse_units("5"))),
        ("decrypt", lambda: orchestrator.decrypt_balance(asset.key)),
    ]
    for label, step in steps:
        print(f"\n▶ {label}")
        print_result(await step())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Confidential bridge CLI")
    parser.add_argument("--mock", action="store_true", help="Use the in-process ledger and encryption service")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("list-assets", help="Print the known token pairs and their addresses")

    mint_parser = subparsers.add_parser("mint", help="Mint underlying test tokens")
    mint_parser.add_argument("asset", help="Token key (e.g. zama, usdc, eth)")
    mint_parser.add_argument("amount", help="Amount in whole token units (e.g. 100)")
    mint_parser.add_argument("--to", help="Recipient address (default: signer)")

    wrap_parser = subparsers.add_parser("wrap", help="Wrap underlying tokens into confidential tokens")
    wrap_parser.add_argument("asset", help="Token key")
    wrap_parser.add_argument("amount", help="Amount in whole token units (e.g. 50)")
    wrap_parser.add_argument("--recipient", help="Confidential recipient address (default: signer)")

    unwrap_parser = subparsers.add_parser("unwrap", help="Unwrap confidential tokens back to underlying")
    unwrap_parser.add_argument("asset", help="Token key")
    unwrap_parser.add_argument("amount", help="Amount in whole token units (e.g. 5)")
    unwrap_parser.add_argument("--from", dest="from_", help="Confidential balance holder (default: signer)")
    unwrap_parser.add_argument("--recipient", help="Underlying recipient address (default: signer)")

    decrypt_parser = subparsers.add_parser("decrypt-balance", help="Decrypt a confidential balance")
    decrypt_parser.add_argument("asset", help="Token key")
    decrypt_parser.add_argument("--holder", help="Address to inspect (default: signer)")

    demo_parser = subparsers.add_parser("demo", help="Run the full bridge flow in mock mode")
    demo_parser.add_argument("asset", nargs="?", default="zama", help="Token key (default: zama)")

    return parser


async def run(args: argparse.Namespace) -> None:
    use_mock = args.mock or args.command == "demo" or settings.use_mock_backends
    orchestrator = build_mock_orchestrator() if use_mock else build_orchestrator()

    try:
        if args.command == "list-assets":
            await cli_list_assets(orchestrator)
        elif args.command == "mint":
            await cli_mint(orchestrator, args.asset, args.amount, args.to)
        elif args.command == "wrap":
            await cli_wrap(orchestrator, args.asset, args.amount, args.recipient)
        elif args.command == "unwrap":
            await cli_unwrap(orchestrator, args.asset, args.amount, args.from_, args.recipient)
        elif args.command == "decrypt-balance":
            await cli_decrypt_balance(orchestrator, args.asset, args.holder)
        elif args.command == "demo":
            await cli_demo(orchestrator, args.asset)
    finally:
        await orchestrator.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_level or "WARNING", stream=sys.stderr, console=True)

    try:
        asyncio.run(run(args))
    except BridgeError as exc:
        print(f"❌ {exc.code}: {exc.message}", file=sys.stderr)
        if exc.context.suggested_action:
            print(f"   {exc.context.suggested_action}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted; broadcast transactions may still confirm.", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
