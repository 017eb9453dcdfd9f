"""
Content Rail CLI

Commands:
  serve          - Run the HTTP server
  audit          - Check the conservation invariant of a stored ledger
  verify-events  - Verify the stored event chain
  balances       - Show escrow and earnings for an identity
"""

import argparse
import os
import sys

from .config import RailConfig
from .logging_utils import configure_logging


def _open_rail(config: RailConfig):
    from .core.events import EventSigner
    from .engine.rail import ContentRail
    from .persistence.database import get_database
    from .persistence.repository import LedgerRepository

    repository = LedgerRepository(get_database(config.database_url))
    return ContentRail.from_repository(
        repository,
        signer=EventSigner(config.event_signing_key),
    )


def cmd_serve(args, config: RailConfig):
    """Run the HTTP server."""
    import uvicorn

    port = args.port or config.port
    os.environ["DATABASE_URL"] = config.database_url
    print(f"Starting Content Rail on {args.host}:{port}")

    uvicorn.run(
        "content_rail.api.server:app",
        host=args.host,
        port=port,
        reload=args.reload,
        workers=1,  # one process owns the ledger state
    )


def cmd_audit(args, config: RailConfig):
    """Check that escrow + earnings + withdrawals equal deposits."""
    rail = _open_rail(config)
    report = rail.audit_conservation()

    print("Content Rail Conservation Audit")
    print("=" * 40)
    print(f"Contents:        {rail.get_content_count()}")
    print(f"Escrow total:    {report['escrow_total']}")
    print(f"Earnings total:  {report['earnings_total']}")
    print(f"Withdrawn:       {report['total_withdrawn']}")
    print(f"Deposited:       {report['total_deposited']}")
    print(f"Balanced:        {'Yes' if report['balanced'] else 'NO'}")

    if not report["balanced"]:
        sys.exit(1)


def cmd_verify_events(args, config: RailConfig):
    """Verify the stored event chain."""
    rail = _open_rail(config)
    chain_ok, chain_error = rail.events.verify_chain_integrity()
    sig_ok, sig_error, foreign = rail.events.verify_signatures()

    print(f"Events: {len(rail.events)}")
    print(f"Merkle root: {rail.events.merkle_root()}")
    print(f"Chain: {'valid' if chain_ok else 'BROKEN - ' + str(chain_error)}")
    print(f"Signatures: {'valid' if sig_ok else 'INVALID - ' + str(sig_error)}")
    if foreign:
        print(f"  {foreign} event(s) signed under another key were not checked")

    if not (chain_ok and sig_ok):
        sys.exit(1)


def cmd_balances(args, config: RailConfig):
    """Show balances for an identity."""
    rail = _open_rail(config)
    print(f"Identity: {args.identity}")
    print(f"  Escrow:   {rail.get_escrow_balance(args.identity)}")
    print(f"  Earnings: {rail.get_earnings_balance(args.identity)}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Content Rail - pay-per-use content access ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--database-url", help="Override DATABASE_URL")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the server")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")

    subparsers.add_parser("audit", help="Check conservation of value")
    subparsers.add_parser("verify-events", help="Verify the event log")

    balances_parser = subparsers.add_parser("balances", help="Show balances")
    balances_parser.add_argument("identity", help="Identity to inspect")

    args = parser.parse_args(argv)

    config = RailConfig.from_env()
    if args.database_url:
        config.database_url = args.database_url
    configure_logging(config.log_level, config.json_logs)

    if args.command == "serve":
        cmd_serve(args, config)
    elif args.command == "audit":
        cmd_audit(args, config)
    elif args.command == "verify-events":
        cmd_verify_events(args, config)
    elif args.command == "balances":
        cmd_balances(args, config)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
