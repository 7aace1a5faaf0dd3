#!/usr/bin/env python3
"""
Refund and cancellation flow test script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_refund_and_cancel.py --equipment-id <UUID> --renter-id <UUID> --owner-id <UUID> \
        --start 2026-12-01 --end 2026-12-03

Flow:
    1. Create booking (renter)
    2. Pay from the renter's wallet
    3. Reject booking (owner) - renter is refunded
    4. Create a second request on the freed dates
    5. Cancel it before paying
"""

import argparse
import sys

from _common import api_request, print_step, require, token_for


def main():
    parser = argparse.ArgumentParser(description="Refund and cancellation flow")
    parser.add_argument("--equipment-id", required=True, help="Equipment UUID")
    parser.add_argument("--renter-id", required=True, help="Renter user UUID")
    parser.add_argument("--owner-id", required=True, help="Owner user UUID")
    parser.add_argument("--start", required=True, help="First rental day (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, help="Last rental day (YYYY-MM-DD)")
    parser.add_argument("--reason", default="Matériel indisponible", help="Rejection reason")
    args = parser.parse_args()

    renter_token = token_for(args.renter_id)
    owner_token = token_for(args.owner_id)
    dates = {"equipment_id": args.equipment_id, "start_date": args.start, "end_date": args.end}

    # Step 1: Create booking
    print_step(1, "Create booking")
    booking = require(
        api_request(renter_token, "POST", "/api/v1/bookings", dates),
        ["id", "booking_number", "amount_charged", "status"],
    )
    booking_id = booking["id"]

    # Step 2: Pay
    print_step(2, "Pay from wallet")
    require(api_request(renter_token, "POST", f"/api/v1/bookings/{booking_id}/pay/wallet"), ["status", "payment_status"])
    balance_before = require(api_request(renter_token, "GET", "/api/v1/wallets/me"), ["balance"])["balance"]

    # Step 3: Reject
    print_step(3, "Reject booking (as owner)")
    rejected = require(
        api_request(owner_token, "POST", f"/api/v1/bookings/{booking_id}/reject", {"reason": args.reason}),
        ["status", "payment_status", "refund_review_required"],
    )
    balance_after = require(api_request(renter_token, "GET", "/api/v1/wallets/me"), ["balance"])["balance"]
    print(f"\nRefunded: {balance_after - balance_before:,} FCFA (status {rejected['status']})")

    # Step 4: Rebook the freed dates
    print_step(4, "Create a second request on the same dates")
    second = require(api_request(renter_token, "POST", "/api/v1/bookings", dates), ["id", "booking_number", "status"])

    # Step 5: Cancel it
    print_step(5, "Cancel the unpaid request")
    require(api_request(renter_token, "POST", f"/api/v1/bookings/{second['id']}/cancel"), ["status", "cancelled_at"])

    print("\n" + "="*60)
    print("REFUND AND CANCEL FLOW COMPLETE")
    print("="*60)


if __name__ == "__main__":
    sys.exit(main())
