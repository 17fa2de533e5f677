"""Command line interface for the Stacks Turnkey SDK.

Usage:
    stacks-turnkey address <public-key>
    stacks-turnkey balance <address>
    stacks-turnkey nonce <address>
    stacks-turnkey fee-rate
    stacks-turnkey history <address>
    stacks-turnkey create-wallet <user-name> <wallet-name>
    stacks-turnkey transfer-stx <public-key> <to> <amount> [--memo M] [--org ID]
    stacks-turnkey sendable <balance> <fee-rate> [--size N]

Options:
    --network  mainnet or testnet (default: NETWORK env var, then testnet)
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from stacks_turnkey.config import get_settings
from stacks_turnkey.fees import InsufficientFundsError
from stacks_turnkey.sdk import StacksTurnkey

logger = logging.getLogger(__name__)

# Serialized size of a single-sig STX transfer with an empty memo
STX_TRANSFER_SIZE = 180


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stacks-turnkey",
        description="Stacks embedded wallet SDK backed by Turnkey",
    )
    parser.add_argument(
        "--network",
        choices=["mainnet", "testnet"],
        help="Stacks network (default: from settings)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    address = subparsers.add_parser("address", help="Derive a Stacks address from a public key")
    address.add_argument("public_key", help="Turnkey wallet public key (hex)")

    for name, help_text in (
        ("balance", "STX balance in micro-STX"),
        ("nonce", "Next account nonce"),
        ("history", "Recent transactions"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("address", help="Stacks address")

    subparsers.add_parser("fee-rate", help="Current transfer fee rate (micro-STX per byte)")

    create_wallet = subparsers.add_parser("create-wallet", help="Create a Turnkey Stacks wallet")
    create_wallet.add_argument("user_name")
    create_wallet.add_argument("wallet_name")

    transfer = subparsers.add_parser("transfer-stx", help="Sign and broadcast an STX transfer")
    transfer.add_argument("public_key", help="Sender Turnkey wallet public key (hex)")
    transfer.add_argument("to", help="Recipient Stacks address")
    transfer.add_argument("amount", type=int, help="Amount in micro-STX")
    transfer.add_argument("--memo", default="", help="Memo (up to 34 bytes)")
    transfer.add_argument("--org", dest="organization_id", help="Sub-organization owning the key")

    sendable = subparsers.add_parser("sendable", help="Largest amount sendable after fees")
    sendable.add_argument("balance", type=int, help="Balance in micro-STX")
    sendable.add_argument("fee_rate", type=int, help="Fee rate in micro-STX per byte")
    sendable.add_argument(
        "--size",
        type=int,
        default=STX_TRANSFER_SIZE,
        help=f"Estimated transaction size in bytes (default: {STX_TRANSFER_SIZE})",
    )

    return parser


async def run(args: argparse.Namespace, sdk: StacksTurnkey):
    """Execute a parsed command and return its JSON-serializable result."""
    transactions = sdk.transactions

    if args.command == "address":
        return {"address": transactions.derive_stacks_address_from_turnkey_address(args.public_key)}
    if args.command == "balance":
        return {"address": args.address, "balance": await transactions.get_stacks_balance(args.address)}
    if args.command == "nonce":
        return {"address": args.address, "nonce": await transactions.get_current_nonce(args.address)}
    if args.command == "fee-rate":
        return {"feeRate": await transactions.get_fee_rate()}
    if args.command == "history":
        return await transactions.get_stacks_transactions(args.address)
    if args.command == "create-wallet":
        return await transactions.generate_stacks_wallet(args.user_name, args.wallet_name)
    if args.command == "transfer-stx":
        return await transactions.transfer_stx(
            args.public_key,
            args.to,
            args.amount,
            memo=args.memo,
            organization_id=args.organization_id,
        )
    if args.command == "sendable":
        return {
            "sendable": transactions.safe_transfer_amount(args.balance, args.fee_rate, args.size)
        }

    raise ValueError(f"Unknown command: {args.command}")


async def _main(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with StacksTurnkey(settings=settings, network=args.network) as sdk:
        try:
            result = await run(args, sdk)
        except InsufficientFundsError as e:
            logger.error(str(e))
            print(json.dumps({"error": str(e), "balance": e.balance, "fee": e.estimated_fee}))
            return 1

    print(json.dumps(result, indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()

    args = build_parser().parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
