# cli/cli.py
"""
Checks against a running funnel deployment.

    funnel-cli verify-imports
    funnel-cli check-endpoint --endpoint-url https://example.com/api/ingest
    funnel-cli send-test-lead --sheet-name audit
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Awaitable, Callable, Dict, Optional

from cli.verification import VerificationResult, check_endpoint, check_imports, send_test_lead

DEFAULT_ENDPOINT = os.getenv("INGEST_ENDPOINT_URL") or "http://localhost:8000/api/ingest"

_COLOR = sys.stdout.isatty() and sys.platform != "win32"


def _paint(code: str, text: str) -> str:
    return f"\033[{code}m{text}\033[0m" if _COLOR else text


def print_success(message: str):
    print(f"{_paint('92', '[✓]')} {message}")


def print_error(message: str):
    print(f"{_paint('91', '[✗]')} {message}", file=sys.stderr)


def print_info(message: str):
    print(f"{_paint('94', '[i]')} {message}")


def report(result: VerificationResult) -> int:
    """Print a result and turn it into an exit code."""
    if result.success:
        print_success(result.message)
        return 0
    print_error(result.message)
    return 1


async def cmd_verify_imports(args: argparse.Namespace) -> int:
    result = await check_imports()
    for error in result.data.get("errors", []):
        print_error(f"  {error['module']}: {error['type']}: {error['error']}")
    return report(result)


async def cmd_check_endpoint(args: argparse.Namespace) -> int:
    print_info(f"GET {args.endpoint_url}")
    return report(await check_endpoint(args.endpoint_url, timeout=args.timeout))


async def cmd_send_test_lead(args: argparse.Namespace) -> int:
    print_info(f"POST {args.endpoint_url} (sheetName={args.sheet_name or '-'})")
    result = await send_test_lead(args.endpoint_url, sheet_name=args.sheet_name, timeout=args.timeout)
    if result.success:
        print_info(f"Look for {result.data['email']} in the sheet")
    return report(result)


COMMANDS: Dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
    "verify-imports": cmd_verify_imports,
    "check-endpoint": cmd_check_endpoint,
    "send-test-lead": cmd_send_test_lead,
}


def _add_endpoint_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--endpoint-url", default=DEFAULT_ENDPOINT, help="ingestion endpoint URL")
    parser.add_argument("--timeout", type=float, default=10.0, help="request timeout in seconds")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="funnel-cli",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("verify-imports", help="import every funnel module")

    _add_endpoint_args(subparsers.add_parser("check-endpoint", help="GET the endpoint and expect status ok"))

    lead = subparsers.add_parser("send-test-lead", help="append a synthetic lead through the endpoint")
    _add_endpoint_args(lead)
    lead.add_argument("--sheet-name", default=None, help="routing value, e.g. audit or main_discovery_v2")

    return parser


def main(args: Optional[list] = None) -> int:
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(COMMANDS[parsed_args.command](parsed_args))
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
