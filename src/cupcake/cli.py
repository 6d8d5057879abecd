"""
cupcake-send - submit tag transactions from the command line

Usage:
    cupcake-send submit txs.b64 --policy sequential
    cupcake-send sign-submit prepared.b64 --keypair ~/.config/solana/id.json --policy stop-on-failure
    cupcake-send submit txs.b64 --cluster mainnet-beta --timeout 30

Input files hold one base64-encoded transaction per line. Blank lines and
lines starting with '#' are ignored.

Exit code 0 only if every transaction confirmed.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import sys
from typing import List, Optional

from loguru import logger
from solders.transaction import Transaction

from .adapters.solana_rpc import SolanaLedgerNode
from .config.settings import EngineSettings, load_settings
from .domain.errors import BatchPartialFailure, SubmissionError
from .domain.models import BatchResult, SignedTransaction
from .engines.execution.signing import KeypairSigner
from .engines.submission_engine import SubmissionEngine
from .utils.logging import configure_logging
from .wallet import load_keypair


def read_encoded_lines(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip() and not line.strip().startswith("#")]


def _on_success(transaction_id: str, index: int) -> None:
    logger.info(f"CONFIRMED | index={index} | sig={transaction_id}")


def _on_failure(error: SubmissionError, index: int) -> None:
    logger.error(f"FAILED | index={index} | {type(error).__name__}: {error}")


def report(result: BatchResult) -> int:
    """Print one line per outcome. Returns the process exit code."""
    for outcome in result.outcomes:
        print(f"{outcome.status.value}\t{outcome.transaction_id or '-'}\t{outcome.slot if outcome.slot is not None else '-'}")

    try:
        result.raise_for_truncation()
    except BatchPartialFailure as e:
        logger.error(f"BATCH_TRUNCATED | {e}")
        return 1

    return 0 if result.all_confirmed else 1


async def run_submit(args: argparse.Namespace, settings: EngineSettings) -> int:
    transactions = [SignedTransaction.from_base64(line) for line in read_encoded_lines(args.file)]
    node = SolanaLedgerNode(settings.rpc_url, ws_url=settings.ws_url, commitment=settings.commitment_level)
    async with SubmissionEngine(node, settings) as engine:
        result = await engine.submit_batch(
            transactions,
            settings.sequencing_policy,
            on_success=_on_success,
            on_failure=_on_failure,
        )
    return report(result)


async def run_sign_submit(args: argparse.Namespace, settings: EngineSettings) -> int:
    prepared = [Transaction.from_bytes(base64.b64decode(line)) for line in read_encoded_lines(args.file)]
    signer = KeypairSigner(load_keypair(args.keypair))
    node = SolanaLedgerNode(settings.rpc_url, ws_url=settings.ws_url, commitment=settings.commitment_level)
    async with SubmissionEngine(node, settings) as engine:
        result = await engine.sign_and_submit(
            prepared,
            signer,
            settings.sequencing_policy,
            on_success=_on_success,
            on_failure=_on_failure,
        )
    return report(result)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cupcake-send",
        description="Submit signed tag transactions and wait for confirmation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Policies:
    parallel           all at once, no ordering
    sequential         one at a time, failures do not stop the batch
    stop-on-failure    one at a time, first failure ends the batch
        """,
    )
    parser.add_argument("--config", help="TOML settings file")
    parser.add_argument("--cluster", help="mainnet-beta | testnet | devnet")
    parser.add_argument("--rpc-url", help="RPC endpoint (overrides --cluster)")
    parser.add_argument("--ws-url", help="Pubsub endpoint (derived from the RPC URL by default)")
    parser.add_argument("--policy", help="parallel | sequential | stop-on-failure")
    parser.add_argument("--timeout", type=float, help="Per-transaction confirmation timeout (seconds)")
    parser.add_argument("--log-level", default=None, help="Console log level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_submit = subparsers.add_parser("submit", help="Submit already signed transactions")
    parser_submit.add_argument("file", help="File with one base64 transaction per line")

    parser_sign = subparsers.add_parser("sign-submit", help="Sign prepared transactions, then submit")
    parser_sign.add_argument("file", help="File with one base64 prepared transaction per line")
    parser_sign.add_argument("--keypair", required=True, help="Keypair JSON file or base58 secret")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(
            args.config,
            cli_overrides={
                "cluster": args.cluster,
                "rpc_url": args.rpc_url,
                "ws_url": args.ws_url,
                "policy": args.policy,
                "timeout_seconds": args.timeout,
            },
        )
    except ValueError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 2

    configure_logging(args.log_level or settings.log_level, settings.log_file)
    settings.log_summary()

    try:
        if args.command == "submit":
            return asyncio.run(run_submit(args, settings))
        return asyncio.run(run_sign_submit(args, settings))
    except (ValueError, SubmissionError) as e:
        logger.error(f"FATAL | {type(e).__name__}: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("INTERRUPTED")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
