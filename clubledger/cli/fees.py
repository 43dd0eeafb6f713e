"""CLI entry point for previewing and applying annual membership fees.

Usage:
    python -m clubledger.cli.fees preview --year 2025
    python -m clubledger.cli.fees apply --year 2025 --applied-by treasurer --override 3=450

Exit Codes:
    0 - Success: preview printed, or every eligible member charged or skipped
    1 - Failure: invalid input, database error, or at least one member failed
"""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from clubledger.config import Settings
from clubledger.main import build_store
from clubledger.services.db import create_engine_from_url, create_session_factory, create_tables
from clubledger.services.errors import LedgerError
from clubledger.services.fee_service import FeeService
from clubledger.services.logging import setup_server_logging
from clubledger.services.schemas import FeeApplicationResult, FeePreview

logger = logging.getLogger(__name__)


def parse_override(value: str) -> tuple[int, Decimal]:
    """Parse ``CATEGORY_ID=AMOUNT``."""
    category_id, sep, amount = value.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected CATEGORY_ID=AMOUNT, got {value!r}")
    try:
        return int(category_id), Decimal(amount)
    except (ValueError, InvalidOperation) as e:
        raise argparse.ArgumentTypeError(f"invalid override {value!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Annual membership fee run")
    parser.add_argument("command", choices=["preview", "apply"])
    parser.add_argument("--year", type=int, required=True, help="Fee year")
    parser.add_argument(
        "--override",
        type=parse_override,
        action="append",
        default=[],
        metavar="CATEGORY_ID=AMOUNT",
        help="Charge AMOUNT to members of CATEGORY_ID instead of the category default",
    )
    parser.add_argument("--applied-by", default="cli", help="Staff user recorded on each fee")
    return parser


def print_preview(preview: FeePreview) -> None:
    print(f"Fee year {preview.year}")
    for line in preview.breakdown.values():
        print(f"  {line.category_name}: {line.member_count} x {line.fee_amount}")
    print(f"Members to charge: {preview.total_members}")
    print(f"Total amount: {preview.total_amount}")
    print(f"Already applied: {preview.already_applied_count}")


def print_result(result: FeeApplicationResult) -> None:
    print(f"Fee year {result.year}")
    print(f"  Successful: {result.successful}")
    print(f"  Skipped: {result.skipped}")
    print(f"  Failed: {result.failed}")
    print(f"  Total charged: {result.total_amount}")
    for outcome in result.details:
        if outcome.status == "failed":
            print(f"  FAILED {outcome.member_name} (#{outcome.member_id}): {outcome.reason}")


async def main(argv: list[str] | None = None) -> int:
    """
    Run a fee preview or application.

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = build_parser().parse_args(argv)
    load_dotenv()
    settings = Settings()
    setup_server_logging(settings.log_file, settings.log_level)

    engine = create_engine_from_url(settings.database_url, echo=settings.database_echo)
    try:
        await create_tables(engine)
        service = FeeService(build_store(settings, create_session_factory(engine)))
        overrides = dict(args.override)

        if args.command == "preview":
            print_preview(await service.preview_fee_application(args.year, overrides))
            return 0

        result = await service.apply_annual_fees(args.year, overrides, applied_by=args.applied_by)
        print_result(result)
        return 1 if result.failed else 0
    except LedgerError as e:
        logger.error(f"Fee {args.command} failed: {e.message}")
        return 1
    except SQLAlchemyError as e:
        logger.error(f"Fee {args.command} failed: database error: {e}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
