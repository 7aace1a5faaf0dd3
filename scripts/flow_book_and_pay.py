#!/usr/bin/env python3
"""
Complete booking and payment flow test script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_book_and_pay.py --equipment-id <UUID> --renter-id <UUID> --owner-id <UUID> \
        --start 2026-11-02 --end 2026-11-08

Flow:
    1. Quote the rental
    2. Create booking (renter)
    3. Pay from the renter's wallet
    4. Approve booking (owner)
    5. Finalize the return in good condition (owner)
    6. Show the owner's wallet and commission stats
"""

import argparse
import sys

from _common import api_request, print_step, require, token_for


def main():
    parser = argparse.ArgumentParser(description="Complete booking and payment flow")
    parser.add_argument("--equipment-id", required=True, help="Equipment UUID")
    parser.add_argument("--renter-id", required=True, help="Renter user UUID")
    parser.add_argument("--owner-id", required=True, help="Owner user UUID")
    parser.add_argument("--start", required=True, help="First rental day (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, help="Last rental day (YYYY-MM-DD)")
    parser.add_argument("--skip-finalize", action="store_true", help="Stop after approval")
    args = parser.parse_args()

    renter_token = token_for(args.renter_id)
    owner_token = token_for(args.owner_id)

    # Step 1: Quote
    print_step(1, "Quote the rental")
    quote = require(api_request(renter_token, "POST", f"/api/v1/equipment/{args.equipment_id}/quote", {
        "start_date": args.start,
        "end_date": args.end,
    }))
    print(f"\nPricing Summary:")
    print(f"  Rental days:    {quote['rental_days']}")
    print(f"  Subtotal:       {quote['subtotal']:,} FCFA")
    print(f"  Platform fee:   {quote['platform_fee']:,} FCFA")
    print(f"  Renter pays:    {quote['total']:,} FCFA")
    print(f"  Owner receives: {quote['owner_amount']:,} FCFA")

    # Step 2: Create booking
    print_step(2, "Create booking")
    booking = require(api_request(renter_token, "POST", "/api/v1/bookings", {
        "equipment_id": args.equipment_id,
        "start_date": args.start,
        "end_date": args.end,
    }), ["id", "booking_number", "total_price", "amount_charged", "status", "payment_status"])
    booking_id = booking["id"]
    print(f"\nBooking created: {booking['booking_number']}")

    # Step 3: Pay with wallet
    print_step(3, "Pay from wallet")
    require(
        api_request(renter_token, "POST", f"/api/v1/bookings/{booking_id}/pay/wallet"),
        ["id", "status", "payment_status", "payment_method", "paid_at"],
    )
    print("\nBooking PAID")

    # Step 4: Approve
    print_step(4, "Approve booking (as owner)")
    require(
        api_request(owner_token, "POST", f"/api/v1/bookings/{booking_id}/approve"),
        ["id", "status", "approved_at"],
    )
    print("\nBooking APPROVED")

    if not args.skip_finalize:
        # Step 5: Finalize
        print_step(5, "Finalize return (as owner)")
        require(api_request(owner_token, "POST", f"/api/v1/bookings/{booking_id}/finalize", {
            "condition": "good",
        }))
        print("\nBooking COMPLETED")

    # Step 6: Owner wallet
    print_step(6, "Owner wallet")
    wallet = require(api_request(owner_token, "GET", "/api/v1/wallets/me"), ["balance", "currency", "is_frozen"])
    stats = require(api_request(owner_token, "GET", "/api/v1/wallets/me/commissions?period=month"))

    print("\n" + "="*60)
    print("FULL FLOW COMPLETE")
    print("="*60)
    print(f"Booking:          {booking['booking_number']}")
    print(f"Owner balance:    {wallet['balance']:,} FCFA")
    print(f"Commission month: {stats['total_commission']:,} FCFA")


if __name__ == "__main__":
    sys.exit(main())
