#!/usr/bin/env python3
"""
Dev helper: search receipt emails through the local Tax Report backend and
optionally download the report bundle.

Calls POST /api/emails/search for a date range, prints the extracted amount
and date per email, and with --zip PATH posts the results to
POST /api/emails/report and saves the ZIP.

Usage
-----
# Search March 2024, token from GRAPH_ACCESS_TOKEN
python scripts/fetch_tax_report.py --start 2024-03-01 --end 2024-03-31

# Only subjects containing "SBB" or "EasyRide"
python scripts/fetch_tax_report.py --start 2024-01-01 --end 2024-12-31 \
    --subject SBB --subject EasyRide

# Also download the bundle
python scripts/fetch_tax_report.py --start 2024-03-01 --end 2024-03-31 --zip report.zip

# Target a different backend URL
python scripts/fetch_tax_report.py --url http://staging.example.ch --start ... --end ...

Environment / .env
------------------
GRAPH_ACCESS_TOKEN   Microsoft Graph access token with Mail.Read (required
                     unless --token is given).
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv


def _print_records(records: list[dict]) -> None:
    if not records:
        print("\nNo emails found.")
        return

    print(f"\n{len(records)} email(s):")
    for index, record in enumerate(records, start=1):
        amount = record.get("amount") or "-"
        txn_date = record.get("transaction_date") or "-"
        print(f"  {index:03d}  {txn_date:<10}  CHF {amount:>10}  {record.get('subject', '')}")


def _print_error(response: httpx.Response) -> None:
    print(f"\n[FAIL] HTTP {response.status_code}", file=sys.stderr)
    try:
        print(json.dumps(response.json(), indent=2), file=sys.stderr)
    except ValueError:
        print(response.text, file=sys.stderr)


def main() -> int:
    # Locate project root (scripts/ lives one level below the root)
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="fetch_tax_report.py",
        description=textwrap.dedent("""\
            Search receipt emails through the Tax Report backend.

            Reads GRAPH_ACCESS_TOKEN from the environment or a .env file in
            the project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument("--start", required=True, metavar="YYYY-MM-DD", help="First day (inclusive)")
    parser.add_argument("--end", required=True, metavar="YYYY-MM-DD", help="Last day (inclusive)")
    parser.add_argument(
        "--subject",
        action="append",
        default=[],
        metavar="TEXT",
        help="Subject substring; repeat for several (matches any)",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="Override the access token. Defaults to GRAPH_ACCESS_TOKEN.",
    )
    parser.add_argument(
        "--zip",
        default=None,
        metavar="PATH",
        help="Also download the report bundle to this path.",
    )

    args = parser.parse_args()

    token = args.token or os.getenv("GRAPH_ACCESS_TOKEN", "")
    if not token:
        print(
            "ERROR: No access token found.\n"
            "Set GRAPH_ACCESS_TOKEN in your environment or .env file, or pass --token.",
            file=sys.stderr,
        )
        return 1

    base_url = args.url.rstrip("/")
    headers = {"Authorization": f"Bearer {token}"}

    try:
        with httpx.Client(base_url=base_url, headers=headers, timeout=300) as client:
            response = client.post(
                "/api/emails/search",
                json={
                    "start_date": args.start,
                    "end_date": args.end,
                    "subject_filters": args.subject,
                },
            )
            if response.status_code != 200:
                _print_error(response)
                return 1

            records = response.json()
            _print_records(records)

            if not args.zip:
                return 0

            response = client.post("/api/emails/report", json={"emails": records})
            if response.status_code != 200:
                _print_error(response)
                return 1

            Path(args.zip).write_bytes(response.content)
            print(f"\nSaved report bundle: {args.zip} ({len(response.content):,} bytes)")

            skipped = json.loads(response.headers.get("x-skipped-items") or "[]")
            for item in skipped:
                print(
                    f"  skipped {item['sequence']:03d} ({item['stage']}): {item['reason']}",
                    file=sys.stderr,
                )
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {base_url}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn taxreport.main:app --reload",
            file=sys.stderr,
        )
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
