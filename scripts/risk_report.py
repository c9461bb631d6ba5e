"""
Risk report CLI.

Prints the risk summary for one day, or the recent risk history of one
customer, using the configured data backend (see config/settings.py).
Optionally writes the assessed transactions to CSV for review.

Examples:
  python scripts/risk_report.py --date 2025-06-15
  python scripts/risk_report.py --date 2025-06-15 --output flagged.csv
  python scripts/risk_report.py --customer 42 --limit 20
"""

import argparse
import csv
import sys
from datetime import date
from pathlib import Path
from typing import List

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import get_risk_history, get_settings
from domain.risk import AssessedTransaction
from services.risk_service import get_daily_risk_summary, get_transaction_risk_history

CSV_COLUMNS = [
    "transaction_id",
    "transaction_number",
    "created_at",
    "status",
    "customer_id",
    "total",
    "payment_method",
    "risk_score",
    "risk_level",
    "risk_reasons",
]


def assessed_to_csv_row(item: AssessedTransaction) -> dict:
    record = item.transaction
    return {
        "transaction_id": record.transaction_id,
        "transaction_number": record.transaction_number or "",
        "created_at": record.created_at.isoformat(),
        "status": record.status,
        "customer_id": record.snapshot.customer_id if record.snapshot.customer_id is not None else "",
        "total": f"{record.snapshot.transaction_total:.2f}",
        "payment_method": record.snapshot.payment_method,
        "risk_score": item.assessment.risk_score,
        "risk_level": item.assessment.risk_level.value,
        "risk_reasons": "; ".join(item.assessment.risk_reasons),
    }


def write_csv(items: List[AssessedTransaction], output_path: str) -> None:
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for item in items:
            writer.writerow(assessed_to_csv_row(item))

    print(f"Wrote {len(items)} transactions to {output_path}")


def print_assessed(items: List[AssessedTransaction]) -> None:
    for item in items:
        record = item.transaction
        assessment = item.assessment
        print(
            f"  #{record.transaction_id:<8} {record.created_at:%Y-%m-%d %H:%M} "
            f"{record.snapshot.transaction_total:>10.2f}  "
            f"{assessment.risk_level.value.upper():<8} {assessment.risk_score:>3}"
        )
        for reason in assessment.risk_reasons:
            print(f"      - {reason}")


def daily_report(day: date, output: str = None) -> int:
    settings = get_settings()
    summary = get_daily_risk_summary(
        day,
        get_risk_history(),
        lookup_timeout=settings.lookup_timeout_seconds,
        timezone_name=settings.store_timezone,
    )

    if summary is None:
        print(f"Transaction history unavailable for {day.isoformat()}", file=sys.stderr)
        return 1

    average = summary.total_risk_score / summary.total_transactions if summary.total_transactions else 0.0

    print("=" * 60)
    print(f"RISK SUMMARY {day.isoformat()}")
    print("=" * 60)
    print(f"Transactions:        {summary.total_transactions}")
    print(f"  Low:               {summary.low_risk}")
    print(f"  Medium:            {summary.medium_risk}")
    print(f"  High:              {summary.high_risk}")
    print(f"  Critical:          {summary.critical_risk}")
    print(f"Average risk score:  {average:.1f}")
    print("=" * 60)

    if summary.flagged:
        print("\nFlagged transactions:")
        print_assessed(summary.flagged)

    if output:
        write_csv(summary.flagged, output)

    return 0


def customer_report(customer_id: int, limit: int, output: str = None) -> int:
    settings = get_settings()
    assessed = get_transaction_risk_history(
        customer_id,
        get_risk_history(),
        limit,
        lookup_timeout=settings.lookup_timeout_seconds,
        timezone_name=settings.store_timezone,
    )

    if not assessed:
        print(f"No transactions found for customer {customer_id}")
        return 1

    print(f"Risk history for customer {customer_id} (latest {len(assessed)}):")
    print_assessed(assessed)

    if output:
        write_csv(assessed, output)

    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Print transaction risk reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1],
    )

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--date",
        "-d",
        type=date.fromisoformat,
        help="Day to summarize (YYYY-MM-DD, UTC)"
    )
    target.add_argument(
        "--customer",
        "-c",
        type=int,
        help="Customer id to review"
    )

    parser.add_argument(
        "--limit",
        "-n",
        type=int,
        default=10,
        help="Number of recent transactions for --customer (default 10)"
    )
    parser.add_argument(
        "--output",
        "-o",
        help="Optional CSV file for the listed transactions"
    )

    args = parser.parse_args()

    try:
        if args.date is not None:
            return daily_report(args.date, args.output)
        return customer_report(args.customer, args.limit, args.output)

    except KeyboardInterrupt:
        print("\n\nReport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
