#!/usr/bin/env python3
"""
Smoke script for the payment confirmation flow.

Starts a checkout for a demo article, then polls /api/reconcile the way
the success page does until the article unlocks or the budget runs out.
Run against a server started in demo mode (mock gateway auto-approves).

Usage:
    python smoke_payment.py demo_eurusd user_demo_001
"""
import requests
import sys
import time

BASE_URL = "http://localhost:8000"


def run_payment_flow(article_id: str, user_id: str, attempts: int = 12, interval: float = 5.0):
    """Create a payment and poll reconciliation."""

    print(f"💳 Creating payment for article {article_id} (user {user_id})")
    print("=" * 70)

    try:
        price = requests.get(f"{BASE_URL}/api/articles/{article_id}/price", timeout=10)
        if price.status_code != 200:
            print(f"❌ Article lookup failed: HTTP {price.status_code}")
            print(price.text)
            return
        print(f"   Price: {price.json()['price']} {price.json()['currency']}")

        response = requests.post(
            f"{BASE_URL}/api/create-payment",
            json={
                "articleId": article_id,
                "userId": user_id,
                "description": f"Smoke test for {article_id}",
                "customer": {"firstname": "Demo", "lastname": "User", "email": "demo@example.com"},
            },
            timeout=10,
        )
        data = response.json()
        if not data.get("success"):
            print(f"❌ Payment not created: {data.get('error_code')} - {data.get('error')}")
            return

        print(f"   ✅ Transaction: {data['transactionId']}")
        print(f"   🔗 Checkout URL: {data['url']}")

        for attempt in range(1, attempts + 1):
            result = requests.post(
                f"{BASE_URL}/api/reconcile",
                json={"articleId": article_id, "userId": user_id},
                timeout=10,
            ).json()
            print(f"\n📡 Attempt {attempt}: {result['state']} ({result['reason']})")

            if result["state"] == "unlocked":
                print("   ✅ Article unlocked")
                break
            if not result["retry"]:
                print("   ❌ Payment not confirmed; start a new payment")
                break
            time.sleep(interval)
        else:
            print("\n⚠️  Status unknown after all attempts; refresh manually or contact support")

        history = requests.get(
            f"{BASE_URL}/api/payments/history", params={"user_id": user_id}, timeout=10
        ).json()
        print(f"\n🧾 Payments on record for {user_id}: {history['count']}")
        print("=" * 70)

    except requests.exceptions.Timeout:
        print("❌ Timeout - server took too long to respond")
    except requests.exceptions.ConnectionError:
        print("❌ Connection error - is the server running?")
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python smoke_payment.py <article_id> <user_id>")
        print("\nExample:")
        print("  python smoke_payment.py demo_eurusd user_demo_001")
        sys.exit(1)

    run_payment_flow(sys.argv[1], sys.argv[2])
