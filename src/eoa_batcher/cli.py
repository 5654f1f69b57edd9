"""
Command-line interface for the EOA Batcher.

Provides commands for delegating the EOA, collecting approvals and
executing batch transfers.
"""

import argparse
import asyncio
import json
import logging
import sys

import structlog

from eoa_batcher import __version__
from eoa_batcher.config import BatcherConfig, set_config
from eoa_batcher.core.approvals import ApprovalStatus, load_approvals
from eoa_batcher.core.authorization import (
    build_authorization,
    delegation_marker_hex,
    hash_authorization,
    recover_authorization_signer,
    sign_authorization_hash,
)
from eoa_batcher.core.batch import load_transfers
from eoa_batcher.core.batcher import Batcher


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def _add_network_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--rpc-url", help="JSON-RPC endpoint (default: RPC_URL)")
    parser.add_argument("--chain-id", type=int, help="Chain ID (default: CHAIN_ID or 84532)")
    parser.add_argument(
        "--implementation",
        help="Implementation to delegate to (default: SMART_ACCOUNT_IMPLEMENTATION)",
    )


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="eoa-batcher",
        description="Batch ERC-20 transfers through a delegated EOA",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Authorize command (offline)
    authorize_parser = subparsers.add_parser(
        "authorize",
        help="Build, hash and sign an authorization without touching the network",
    )
    authorize_parser.add_argument("--nonce", type=int, required=True, help="Account nonce to bind")
    authorize_parser.add_argument("--chain-id", type=int, help="Chain ID (default: CHAIN_ID or 84532)")
    authorize_parser.add_argument("--implementation", help="Implementation address")
    _add_logging_arguments(authorize_parser)

    # Status command
    status_parser = subparsers.add_parser("status", help="Show the delegation status of an account")
    status_parser.add_argument("--address", help="Account to inspect (default: the PRIVATE_KEY account)")
    _add_network_arguments(status_parser)
    _add_logging_arguments(status_parser)

    # Delegate command
    delegate_parser = subparsers.add_parser("delegate", help="Delegate the EOA to the implementation")
    _add_network_arguments(delegate_parser)
    _add_logging_arguments(delegate_parser)

    # Approve command
    approve_parser = subparsers.add_parser("approve", help="Collect token approvals from users")
    approve_parser.add_argument("--file", "-f", required=True, help="JSON file of users and tokens")
    approve_parser.add_argument("--spender", help="Spender to approve (default: the PRIVATE_KEY account)")
    _add_network_arguments(approve_parser)
    _add_logging_arguments(approve_parser)

    # Batch command
    batch_parser = subparsers.add_parser("batch", help="Execute a batch of transferFrom calls")
    batch_parser.add_argument("--file", "-f", required=True, help="CSV or JSON file of transfers")
    _add_network_arguments(batch_parser)
    _add_logging_arguments(batch_parser)

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Delegate, collect approvals and batch in one run")
    demo_parser.add_argument("--approvals", required=True, help="JSON file of users and tokens")
    demo_parser.add_argument("--transfers", required=True, help="CSV or JSON file of transfers")
    _add_network_arguments(demo_parser)
    _add_logging_arguments(demo_parser)

    return parser


def build_config(args: argparse.Namespace) -> BatcherConfig:
    """Settings from the environment, overridden by command-line flags."""
    overrides = {}
    if getattr(args, "rpc_url", None):
        overrides["rpc_url"] = args.rpc_url
    if getattr(args, "chain_id", None) is not None:
        overrides["chain_id"] = args.chain_id
    if getattr(args, "implementation", None):
        overrides["smart_account_implementation"] = args.implementation
    if getattr(args, "log_level", None):
        overrides["log_level"] = args.log_level
    if getattr(args, "log_json", False):
        overrides["log_json"] = True
    return BatcherConfig(**overrides)


def authorize(config: BatcherConfig, nonce: int) -> dict:
    """Build, hash and sign an authorization with the configured key."""
    if not config.private_key:
        raise ValueError("No private key configured")

    request = build_authorization(config.chain_id, config.smart_account_implementation, nonce)
    digest = hash_authorization(request)
    signature = sign_authorization_hash(config.private_key, digest)

    return {
        "signer": recover_authorization_signer(digest, signature),
        "digest": "0x" + digest.hex(),
        "authorization": {
            "chainId": request.chain_id,
            "address": request.implementation_address,
            "nonce": request.nonce,
            "yParity": signature.y_parity,
            "r": signature.r_hex,
            "s": signature.s_hex,
        },
        "expected_code": delegation_marker_hex(request.implementation_address),
    }


async def show_status(config: BatcherConfig, address: str = None) -> dict:
    """Delegation status of an account."""
    async with Batcher(config) as batcher:
        account = address or batcher.address
        status = await batcher.check_delegation(account)
        return {
            "account": account,
            "implementation": config.smart_account_implementation,
            "status": status.value,
        }


async def run_delegate(config: BatcherConfig) -> dict:
    async with Batcher(config) as batcher:
        result = await batcher.setup_delegation()
        return result.to_dict()


async def run_approve(config: BatcherConfig, approvals_file: str, spender: str = None) -> list:
    users = load_approvals(approvals_file)
    async with Batcher(config) as batcher:
        results = await batcher.collect_approvals(users, spender)
        return [r.to_dict() for r in results]


async def run_batch(config: BatcherConfig, transfers_file: str) -> dict:
    transfers = load_transfers(transfers_file)
    async with Batcher(config) as batcher:
        batch = await batcher.execute_batch_transfer(transfers)
        return batch.to_dict()


async def run_demo(config: BatcherConfig, approvals_file: str, transfers_file: str) -> dict:
    users = load_approvals(approvals_file)
    transfers = load_transfers(transfers_file)
    async with Batcher(config) as batcher:
        report = await batcher.run_full_example(users, transfers)
        return report.to_dict()


def _exit_code(command: str, output) -> int:
    if command == "delegate":
        return 0 if output["final_status"] == "delegated" else 1
    if command == "approve":
        return 1 if any(r["status"] == ApprovalStatus.FAILED.value for r in output) else 0
    if command == "batch":
        return 0 if output["status"] == "confirmed" else 1
    if command == "demo":
        return 0 if output["batch"] and output["batch"]["status"] == "confirmed" else 1
    return 0


def main() -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = build_config(args)
    set_config(config)
    setup_logging(config.log_level, config.log_json)

    if args.command == "authorize":
        output = authorize(config, args.nonce)
    elif args.command == "status":
        output = asyncio.run(show_status(config, args.address))
    elif args.command == "delegate":
        output = asyncio.run(run_delegate(config))
    elif args.command == "approve":
        output = asyncio.run(run_approve(config, args.file, args.spender))
    elif args.command == "batch":
        output = asyncio.run(run_batch(config, args.file))
    elif args.command == "demo":
        output = asyncio.run(run_demo(config, args.approvals, args.transfers))

    print(json.dumps(output, indent=2))
    sys.exit(_exit_code(args.command, output))


if __name__ == "__main__":
    main()
