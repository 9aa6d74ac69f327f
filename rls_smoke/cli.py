"""
Command-line entry point.

Usage:
    python -m rls_smoke
    rls-smoke-test --env-file .env.test --evidence verification_handoff/rls/RLS_SMOKE.md

Requirements:
- SUPABASE_URL, SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY

Exit codes:
    0  sequence completed (step failures are reported, not fatal)
    1  missing configuration, or a user could not be created / signed in
    2  --fail-on-error was given and at least one step failed
"""

import sys
import asyncio
import logging
import argparse
from typing import List, Optional

import httpx

from .config import REQUIRED_ENV_VARS, Settings, load_env_file, validate_settings
from .errors import ConfigurationError, SmokeTestError
from .identities import create_admin_client, create_anon_client
from .results import SmokeReport
from .runner import RlsSmokeTest

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_STEP_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rls-smoke-test",
        description="Verify Supabase row-level security isolates per-user inventory data",
    )
    parser.add_argument("--env-file", help="Load environment variables from this .env file first")
    parser.add_argument(
        "--status-only",
        action="store_true",
        help="Cross-user reads pass on any 2xx status, even if rows come back",
    )
    parser.add_argument("--fail-on-error", action="store_true", help="Exit 2 if any step failed")
    parser.add_argument("--evidence", metavar="PATH", help="Write a markdown report of the run")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL or INFO)")
    return parser


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


async def run_smoke_test(
    settings: Settings,
    strict: bool = True,
    evidence: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SmokeReport:
    """Build the clients and run the sequence once."""
    admin = await create_admin_client(settings)
    anon = await create_anon_client(settings)

    async with httpx.AsyncClient(transport=transport) as http:
        runner = RlsSmokeTest(settings, admin, anon, http, strict=strict)
        error = None
        try:
            return await runner.run()
        except Exception as e:
            error = str(e)
            raise
        finally:
            runner.report.finish(error)
            if evidence:
                try:
                    runner.report.write_evidence(evidence)
                except OSError as e:
                    logger.error(f"Could not write evidence to {evidence}: {e}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_env_file(args.env_file)
    settings = Settings()
    configure_logging(args.log_level or settings.log_level)

    try:
        validate_settings(settings)
    except ConfigurationError as e:
        print(
            f"❌ Missing Supabase env vars. Set {', '.join(REQUIRED_ENV_VARS)}. (missing: {', '.join(e.missing)})",
            file=sys.stderr,
        )
        return EXIT_ERROR

    try:
        report = asyncio.run(run_smoke_test(settings, strict=not args.status_only, evidence=args.evidence))
    except SmokeTestError as e:
        print(f"❌ RLS smoke test failed: {e}", file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        logger.debug("Smoke test aborted", exc_info=True)
        print(f"❌ RLS smoke test failed: {e}", file=sys.stderr)
        return EXIT_ERROR

    for line in report.summary_lines():
        logger.info(line)

    if args.fail_on_error and not report.all_passed:
        return EXIT_STEP_FAILED
    return EXIT_OK
