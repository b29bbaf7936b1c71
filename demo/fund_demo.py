#!/usr/bin/env python3
"""
Demo funding script — signs up a user, opens an account, and funds it
with a burst of concurrent deposits, then prints the ledger.

!! NOT FOR PRODUCTION !!
This script creates a user with a known password. It is intended ONLY for
local demos and for eyeballing that concurrent deposits all land.

Usage:
    # With the API server running on localhost:8000:
    python demo/fund_demo.py

    # 25 concurrent deposits of $1.23 each:
    python demo/fund_demo.py --iterations 25 --amount 1.23

    # Custom server URL / user:
    python demo/fund_demo.py --base-url http://localhost:9000 --email me@example.com
"""

import argparse
import asyncio
import sys
from decimal import Decimal

import httpx

BASE_URL = "http://localhost:8000"

DEMO_PASSWORD = "FundDemo123!"

CARD = {"type": "card", "account_number": "4111111111111111"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def get_token(client: httpx.AsyncClient, email: str) -> str:
    """Sign the demo user up, or log in if they already exist."""
    resp = await client.post(f"{BASE_URL}/auth/signup", json={
        "email": email,
        "password": DEMO_PASSWORD,
        "first_name": "Auto",
        "last_name": "Tester",
    })
    if resp.status_code == 409:
        resp = await client.post(f"{BASE_URL}/auth/login", json={
            "email": email,
            "password": DEMO_PASSWORD,
        })
    resp.raise_for_status()
    return resp.json()["token"]


async def get_checking_account(client: httpx.AsyncClient, token: str) -> dict:
    """Return the user's checking account, opening one if needed."""
    resp = await client.get(f"{BASE_URL}/accounts", headers=auth_header(token))
    resp.raise_for_status()
    for account in resp.json():
        if account["account_type"] == "checking":
            return account

    resp = await client.post(
        f"{BASE_URL}/accounts",
        json={"account_type": "checking"},
        headers=auth_header(token),
    )
    resp.raise_for_status()
    return resp.json()


async def fund(client: httpx.AsyncClient, token: str, account_id: int, amount: str) -> httpx.Response:
    return await client.post(
        f"{BASE_URL}/accounts/{account_id}/fund",
        json={"amount": amount, "funding_source": CARD},
        headers=auth_header(token),
    )


# ---------------------------------------------------------------------------
# Demo logic
# ---------------------------------------------------------------------------

async def run(base_url: str, email: str, iterations: int, amount: str) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  FUNDING DEMO — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            health = await client.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn app.main:app --reload\n")
            sys.exit(1)

        token = await get_token(client, email)
        account = await get_checking_account(client, token)
        account_id = account["id"]
        starting = Decimal(account["balance"])
        log(f"User: {email} / {DEMO_PASSWORD}")
        log(f"Account {account['account_number']} starts at ${starting}")

        print(f"\nSending {iterations} concurrent deposits of {amount}...")
        responses = await asyncio.gather(
            *[fund(client, token, account_id, amount) for _ in range(iterations)]
        )

        succeeded = [r for r in responses if r.status_code == 201]
        for r in responses:
            if r.status_code != 201:
                log(f"FAILED {r.status_code}: {r.json()}")
        log(f"{len(succeeded)}/{iterations} deposits succeeded")

        resp = await client.get(
            f"{BASE_URL}/accounts/{account_id}/transactions",
            headers=auth_header(token),
        )
        resp.raise_for_status()
        entries = resp.json()

        print("\nLast transactions:")
        for entry in entries[-10:]:
            log(f"#{entry['id']:>5}  {entry['amount']:>10}  {entry['funding_source_type']} "
                f"****{entry['funding_source_last_four']}  {entry['created_at']}")

        balance = (await client.get(
            f"{BASE_URL}/accounts/{account_id}/balance",
            headers=auth_header(token),
        )).json()

    expected = starting + sum(
        (Decimal(r.json()["transaction"]["amount"]) for r in succeeded), Decimal("0")
    )
    print(f"\nFinal balance: ${balance['balance']} (expected ${expected})")
    print(f"Ledger matches stored balance: {balance['match']}\n")


def main() -> None:
    parser = argparse.ArgumentParser(description="Fund a demo account concurrently")
    parser.add_argument("--base-url", default=BASE_URL, help="API server URL")
    parser.add_argument("--email", default="test+auto@example.com", help="Demo user email")
    parser.add_argument("--iterations", type=int, default=10, help="Number of deposits")
    parser.add_argument("--amount", default="1.23", help="Amount per deposit")
    args = parser.parse_args()

    asyncio.run(run(args.base_url, args.email, args.iterations, args.amount))


if __name__ == "__main__":
    main()
