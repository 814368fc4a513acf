"""Command line entry point.

Usage:
    # Serve the quote API
    cpamm serve --port 8000

    # Exact-input quote against explicit reserves
    cpamm quote 1000000 --reserve-in 5000000000 --reserve-out 10000000000

    # Exact-output quote
    cpamm quote 90 --reserve-in 100 --reserve-out 1000 --exact-out
"""

import argparse
import sys

import structlog

from cpamm import library
from cpamm.config import EngineConfig
from cpamm.errors import AmmError
from cpamm.log import configure_logging

logger = structlog.get_logger()


def _serve(args: argparse.Namespace) -> int:
    from cpamm.api import main

    # Flags override CPAMM_HOST / CPAMM_PORT
    if args.host:
        main.HOST = args.host
    if args.port:
        main.PORT = args.port
    main.run()
    return 0


def _quote(args: argparse.Namespace) -> int:
    config = EngineConfig.from_env()
    try:
        if args.exact_out:
            amount = library.get_amount_in(
                args.amount, args.reserve_in, args.reserve_out, config.fee_factor, config.fee_base
            )
        else:
            amount = library.get_amount_out(
                args.amount, args.reserve_in, args.reserve_out, config.fee_factor, config.fee_base
            )
    except AmmError as err:
        logger.error("quote_failed", code=err.code, detail=err.detail)
        print(f"Error: {err.code}: {err.detail}", file=sys.stderr)
        return 1
    print(amount)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cpamm", description="Constant-product AMM engine")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the quote API server")
    serve.add_argument("--host", type=str, default=None, help="Bind address (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: 8000)")
    serve.set_defaults(handler=_serve)

    quote = subparsers.add_parser("quote", help="Single-hop quote against explicit reserves")
    quote.add_argument("amount", type=int, help="Input amount, or output amount with --exact-out")
    quote.add_argument("--reserve-in", type=int, required=True, help="Reserve of the input asset")
    quote.add_argument(
        "--reserve-out", type=int, required=True, help="Reserve of the output asset"
    )
    quote.add_argument(
        "--exact-out",
        action="store_true",
        help="Treat amount as the desired output and print the required input",
    )
    quote.set_defaults(handler=_quote)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    return int(args.handler(args))


if __name__ == "__main__":
    sys.exit(main())
