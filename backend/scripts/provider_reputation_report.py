#!/usr/bin/env python3
import argparse
import json
import os
import sqlite3
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List

DEFAULT_DB_PATH = str(Path(__file__).resolve().parents[1] / "data" / "marketplace.sqlite3")
BOOKING_STATUSES = ("requested", "confirmed", "completed", "rejected", "cancelled")


def load_rows(db_path: str) -> Dict[str, List[Dict[str, Any]]]:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        providers = [dict(row) for row in conn.execute("SELECT id, business_name, is_approved, is_suspended FROM providers")]
        reviews = [dict(row) for row in conn.execute("SELECT provider_id, rating, is_visible FROM reviews")]
        bookings = [dict(row) for row in conn.execute("SELECT provider_id, status FROM service_requests")]
    finally:
        conn.close()
    return {"providers": providers, "reviews": reviews, "bookings": bookings}


def build_report(providers: List[Dict[str, Any]], reviews: List[Dict[str, Any]], bookings: List[Dict[str, Any]]) -> Dict[str, Any]:
    rating_sums: Counter[str] = Counter()
    rating_counts: Counter[str] = Counter()
    hidden_counts: Counter[str] = Counter()
    for review in reviews:
        provider_id = str(review.get("provider_id"))
        if bool(review.get("is_visible", True)):
            rating_sums[provider_id] += int(review.get("rating", 0))
            rating_counts[provider_id] += 1
        else:
            hidden_counts[provider_id] += 1

    status_counts: Dict[str, Counter[str]] = {}
    for booking in bookings:
        provider_id = str(booking.get("provider_id"))
        status_counts.setdefault(provider_id, Counter())[str(booking.get("status", "unknown"))] += 1

    rows = []
    for provider in providers:
        provider_id = str(provider["id"])
        count = rating_counts[provider_id]
        statuses = status_counts.get(provider_id, Counter())
        finished = statuses["completed"] + statuses["rejected"] + statuses["cancelled"]
        rows.append(
            {
                "provider_id": provider_id,
                "business_name": provider.get("business_name", ""),
                "visible": bool(provider.get("is_approved")) and not bool(provider.get("is_suspended")),
                "average_rating": round(rating_sums[provider_id] / count, 2) if count else None,
                "review_count": count,
                "hidden_reviews": hidden_counts[provider_id],
                "bookings": {status: statuses[status] for status in BOOKING_STATUSES},
                "completion_rate": round(statuses["completed"] / finished, 4) if finished else 0.0,
            }
        )
    rows.sort(key=lambda row: (row["average_rating"] is None, -(row["average_rating"] or 0), -row["review_count"]))

    # Bookings of removed providers still count toward the totals.
    totals: Counter[str] = Counter()
    for statuses in status_counts.values():
        totals.update(statuses)
    return {
        "total_providers": len(providers),
        "total_visible_reviews": sum(rating_counts.values()),
        "booking_status_totals": {status: totals[status] for status in BOOKING_STATUSES},
        "providers": rows,
    }


def print_human(report: Dict[str, Any]) -> None:
    print(f"Providers: {report['total_providers']}")
    print(f"Visible reviews: {report['total_visible_reviews']}")
    print("Booking status totals:")
    for status, count in report["booking_status_totals"].items():
        print(f"  - {status}: {count}")
    print("Providers by rating:")
    for row in report["providers"]:
        average = "n/a" if row["average_rating"] is None else f"{row['average_rating']:.2f}"
        print(
            f"  - {row['business_name']} ({row['provider_id']}): rating={average} "
            f"reviews={row['review_count']} completion={row['completion_rate']:.2%}"
        )


def main() -> int:
    parser = argparse.ArgumentParser(description="Summarize provider ratings and booking outcomes.")
    parser.add_argument(
        "--db",
        default=os.getenv("MARKETPLACE_DB_PATH", DEFAULT_DB_PATH),
        help="Path to the marketplace sqlite database.",
    )
    parser.add_argument("--json-out", default="", help="Optional path to write JSON summary.")
    args = parser.parse_args()

    if not Path(args.db).exists():
        parser.error(f"database not found: {args.db}")

    report = build_report(**load_rows(args.db))
    print_human(report)

    if args.json_out:
        path = Path(args.json_out)
        path.write_text(json.dumps(report, indent=2) + "\n", encoding="utf-8")
        print(f"Wrote report: {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
