#!/usr/bin/env python3
"""
Hand an OTP to a scrape that is paused on the broker's OTP screen.

Usage:
    python scripts/otp_helper.py status              # Jobs waiting for an OTP
    python scripts/otp_helper.py status <job_id>     # Progress of one job
    python scripts/otp_helper.py provide <job_id> <otp>
"""

import argparse
import asyncio
import sys
from pathlib import Path

import aiohttp
from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

from stockview.config import get_settings  # noqa: E402
from stockview.services.api_client import StockviewClient  # noqa: E402


async def show_status(client: StockviewClient, job_id: str = None) -> int:
    if job_id is None:
        job_ids = await client.pending_otp_jobs()
        if not job_ids:
            print("No scrape is waiting for an OTP.")
            return 0
        print(f"{len(job_ids)} job(s) waiting for an OTP:")
        for pending_id in job_ids:
            print(f"  {pending_id}")
        return 0

    status = await client.job_status(job_id)
    progress = status["progress"]
    print(f"Job {job_id}: {status['status']} - {progress['percent']}% {progress['stage']}")
    if status.get("awaiting_otp"):
        print("  Waiting for an OTP")
    if status.get("error"):
        print(f"  Error ({status.get('error_kind')}): {status['error']}")
    return 0


async def provide(client: StockviewClient, job_id: str, otp: str) -> int:
    result = await client.provide_otp(job_id, otp)
    if result.get("accepted"):
        print(f"✓ OTP delivered to job {job_id}")
    else:
        print(f"OTP held for job {job_id}; it will be used when the scrape asks for one")
    return 0


async def run(args) -> int:
    base_url = args.base_url or get_settings().api_base_url
    async with StockviewClient(base_url) as client:
        try:
            if args.command == "provide":
                return await provide(client, args.job_id, args.otp)
            return await show_status(client, args.job_id)
        except aiohttp.ClientResponseError as e:
            print(f"✗ Server rejected the request ({e.status}): {e.message}")
            return 1
        except aiohttp.ClientError as e:
            print(f"✗ Could not reach {base_url}: {e}")
            return 1


def main():
    parser = argparse.ArgumentParser(description="Provide OTPs to running broker scrapes")
    parser.add_argument("--base-url", help="API base URL (default: API_BASE_URL setting)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    provide_parser = subparsers.add_parser("provide", help="Submit an OTP for a job")
    provide_parser.add_argument("job_id")
    provide_parser.add_argument("otp")

    status_parser = subparsers.add_parser("status", help="List jobs waiting for an OTP, or show one job")
    status_parser.add_argument("job_id", nargs="?")

    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
