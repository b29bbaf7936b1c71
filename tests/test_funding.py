"""
Tests for funding an account (POST /accounts/{id}/fund).

These tests verify:
  - Deposits increase the balance by exactly the normalized amount
  - Half-cent numeric amounts round up; string amounts must be exact
  - Bad amounts and bad funding sources are rejected before any write
  - Non-active accounts cannot be funded
  - Concurrent deposits to the same account all land (no lost updates)
  - A database failure mid-operation, the commit included, leaves no
    partial state behind and is reported as an error
  - A deposit that would overflow the balance is refused
  - Funding-source numbers are stored encrypted, with only the last four
    digits in the clear
"""

import asyncio

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.sql.dml import Update

from app.database import get_db
from app.exceptions import InternalError
from app.main import app
from app.models.account import Account
from app.models.transaction import Transaction
from app.money import MAX_BALANCE_CENTS
from app.security import decrypt_value
from app.services import account_service, auth_service, transaction_service
from app.services.transaction_service import FundingSource

CARD = {"type": "card", "account_number": "4111111111111111"}
BANK = {"type": "bank", "account_number": "000123456789", "routing_number": "021000021"}


async def _create_account(client, account_type="checking", headers=None):
    response = await client.post(
        "/accounts", json={"account_type": account_type}, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def _state(client, account_id):
    """(balance, number of ledger entries) as seen through the API."""
    balance = await client.get(f"/accounts/{account_id}/balance")
    transactions = await client.get(f"/accounts/{account_id}/transactions")
    return balance.json()["balance"], len(transactions.json())


class TestFundAccount:
    """Happy-path deposits."""

    async def test_fund_with_card(self, authenticated_client):
        account_id = await _create_account(authenticated_client)

        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": "12.50", "funding_source": CARD},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["new_balance"] == "12.50"

        txn = data["transaction"]
        assert txn["account_id"] == account_id
        assert txn["type"] == "deposit"
        assert txn["status"] == "completed"
        assert txn["amount"] == "12.50"
        assert txn["funding_source_type"] == "card"
        assert txn["funding_source_last_four"] == "1111"
        assert txn["description"] == "Funding from card"
        assert "funding_source_encrypted" not in txn

    async def test_fund_with_bank(self, authenticated_client):
        account_id = await _create_account(authenticated_client)

        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": 100, "funding_source": BANK},
        )
        assert response.status_code == 201
        assert response.json()["new_balance"] == "100.00"
        assert response.json()["transaction"]["funding_source_last_four"] == "6789"

    async def test_half_cent_rounds_up_then_accumulates(self, authenticated_client):
        """1.005 deposits 1.01; a further "2.50" brings the balance to 3.51."""
        account_id = await _create_account(authenticated_client)

        first = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": 1.005, "funding_source": CARD},
        )
        assert first.status_code == 201
        assert first.json()["transaction"]["amount"] == "1.01"
        assert first.json()["new_balance"] == "1.01"

        second = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": "2.50", "funding_source": BANK},
        )
        assert second.status_code == 201
        assert second.json()["new_balance"] == "3.51"

    async def test_card_number_separators_are_stripped(self, authenticated_client):
        account_id = await _create_account(authenticated_client)

        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={
                "amount": "5",
                "funding_source": {"type": "card", "account_number": "4111-1111 1111-4242"},
            },
        )
        assert response.status_code == 201
        assert response.json()["transaction"]["funding_source_last_four"] == "4242"

    async def test_fund_savings_account(self, authenticated_client):
        await _create_account(authenticated_client, "checking")
        savings_id = await _create_account(authenticated_client, "savings")

        response = await authenticated_client.post(
            f"/accounts/{savings_id}/fund",
            json={"amount": "0.01", "funding_source": CARD},
        )
        assert response.status_code == 201
        assert response.json()["new_balance"] == "0.01"


class TestFundingRejections:
    """Every rejected request must leave balance and ledger untouched."""

    @pytest.mark.parametrize(
        "amount, error_type",
        [
            ("0.00", "amount_too_small"),
            (0, "amount_too_small"),
            (0.004, "amount_too_small"),
            ("abc", "invalid_amount"),
            ("-5", "invalid_amount"),
            (-5, "invalid_amount"),
            ("1.005", "invalid_amount"),
            ("1e3", "invalid_amount"),
            ("1000000000.01", "invalid_amount"),
            ("100000000000000000", "invalid_amount"),
            (1e20, "invalid_amount"),
            (True, "invalid_amount"),
            (False, "invalid_amount"),
            (None, "invalid_amount"),
            ([1], "invalid_amount"),
        ],
    )
    async def test_bad_amounts(self, authenticated_client, amount, error_type):
        account_id = await _create_account(authenticated_client)

        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": amount, "funding_source": CARD},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == error_type
        assert await _state(authenticated_client, account_id) == ("0.00", 0)

    @pytest.mark.parametrize(
        "source",
        [
            {"type": "bank", "account_number": "000123456789"},
            {"type": "bank", "account_number": "000123456789", "routing_number": "12345"},
            {"type": "bank", "account_number": "000123456789", "routing_number": "02100002X"},
            {"type": "card", "account_number": ""},
            {"type": "card", "account_number": "4111 abcd"},
            {"type": "paypal", "account_number": "4111111111111111"},
        ],
    )
    async def test_bad_funding_sources(self, authenticated_client, source):
        account_id = await _create_account(authenticated_client)

        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": "10.00", "funding_source": source},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_funding_source"
        assert await _state(authenticated_client, account_id) == ("0.00", 0)

    async def test_amount_checked_before_account(self, authenticated_client):
        """A bad amount is reported even when the account doesn't exist."""
        response = await authenticated_client.post(
            "/accounts/999999/fund",
            json={"amount": "abc", "funding_source": CARD},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_amount"

    async def test_unknown_account(self, authenticated_client):
        response = await authenticated_client.post(
            "/accounts/999999/fund",
            json={"amount": "10.00", "funding_source": CARD},
        )
        assert response.status_code == 404
        assert response.json()["error_type"] == "account_not_found"

    async def test_inactive_account_cannot_be_funded(
        self, authenticated_client, session_factory
    ):
        account_id = await _create_account(authenticated_client)
        async with session_factory() as db:
            await db.execute(
                update(Account).where(Account.id == account_id).values(status="closed")
            )
            await db.commit()

        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": "10.00", "funding_source": CARD},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "account_not_active"
        assert await _state(authenticated_client, account_id) == ("0.00", 0)

    async def test_deposit_past_balance_cap_rejected(
        self, authenticated_client, session_factory
    ):
        """The balance column never overflows; the deposit is refused instead."""
        account_id = await _create_account(authenticated_client)
        near_cap = MAX_BALANCE_CENTS - 50
        async with session_factory() as db:
            await db.execute(
                update(Account).where(Account.id == account_id).values(balance_cents=near_cap)
            )
            await db.commit()

        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": "1.00", "funding_source": CARD},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "balance_limit_exceeded"

        async with session_factory() as db:
            balance = await db.execute(
                select(Account.balance_cents).where(Account.id == account_id)
            )
            entries = await db.execute(
                select(Transaction).where(Transaction.account_id == account_id)
            )
            assert balance.scalar_one() == near_cap
            assert entries.scalars().all() == []

    async def test_deposit_up_to_balance_cap_accepted(
        self, authenticated_client, session_factory
    ):
        account_id = await _create_account(authenticated_client)
        async with session_factory() as db:
            await db.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(balance_cents=MAX_BALANCE_CENTS - 50)
            )
            await db.commit()

        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": "0.50", "funding_source": CARD},
        )
        assert response.status_code == 201
        assert response.json()["new_balance"] == "92233720368547758.07"

    async def test_unauthenticated(self, client):
        response = await client.post(
            "/accounts/1/fund",
            json={"amount": "10.00", "funding_source": CARD},
        )
        assert response.status_code == 401


class TestConcurrentFunding:
    """
    Concurrent deposits to ONE account.

    Each request runs in its own session and connection; SQLite serializes
    the writers. Every increment must land: the final balance is the exact
    sum and the ledger has one entry per call.
    """

    async def test_concurrent_deposits_all_land(self, authenticated_client):
        account_id = await _create_account(authenticated_client)
        calls = 10

        responses = await asyncio.gather(*[
            authenticated_client.post(
                f"/accounts/{account_id}/fund",
                json={"amount": "1.25", "funding_source": CARD},
            )
            for _ in range(calls)
        ])

        assert all(r.status_code == 201 for r in responses), [r.text for r in responses]
        assert await _state(authenticated_client, account_id) == ("12.50", calls)

        # Each caller saw a distinct post-deposit balance
        balances = sorted(r.json()["new_balance"] for r in responses)
        assert len(set(balances)) == calls

    async def test_concurrent_deposits_to_different_accounts(
        self, authenticated_client, second_user_headers
    ):
        mine = await _create_account(authenticated_client)
        theirs = await _create_account(authenticated_client, headers=second_user_headers)

        results = await asyncio.gather(
            authenticated_client.post(
                f"/accounts/{mine}/fund",
                json={"amount": "50.00", "funding_source": CARD},
            ),
            authenticated_client.post(
                f"/accounts/{theirs}/fund",
                json={"amount": "30.00", "funding_source": BANK},
                headers=second_user_headers,
            ),
        )
        assert [r.status_code for r in results] == [201, 201]

        mine_balance = await authenticated_client.get(f"/accounts/{mine}/balance")
        theirs_balance = await authenticated_client.get(
            f"/accounts/{theirs}/balance", headers=second_user_headers
        )
        assert mine_balance.json()["balance"] == "50.00"
        assert theirs_balance.json()["balance"] == "30.00"


class TestFundingAtomicity:
    """A store failure mid-operation must leave no trace."""

    async def _open_account(self, db, email):
        user, _ = await auth_service.signup(db, email, "SecurePass123!", "Ada", "Lovelace")
        account = await account_service.create_account(db, user.id, "checking")
        await db.commit()
        # Plain ids: the rollback under test expires every ORM instance in the session
        return account.id, user.id

    async def _stored_state(self, session_factory, account_id):
        async with session_factory() as db:
            balance = await db.execute(
                select(Account.balance_cents).where(Account.id == account_id)
            )
            entries = await db.execute(
                select(Transaction).where(Transaction.account_id == account_id)
            )
            return balance.scalar_one(), entries.scalars().all()

    async def test_failed_increment_rolls_back(self, db_session, session_factory, monkeypatch):
        account_id, user_id = await self._open_account(db_session, "atomic@example.com")

        original_execute = db_session.execute

        async def failing_execute(statement, *args, **kwargs):
            if isinstance(statement, Update):
                raise OperationalError(str(statement), {}, Exception("disk I/O error"))
            return await original_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", failing_execute)

        with pytest.raises(InternalError):
            await transaction_service.fund_account(
                db_session,
                account_id,
                user_id,
                "10.00",
                FundingSource("card", "4111111111111111"),
            )

        assert await self._stored_state(session_factory, account_id) == (0, [])

    async def test_failed_ledger_insert_rolls_back_increment(
        self, db_session, session_factory, monkeypatch
    ):
        """If the ledger insert fails after the increment, the increment is undone."""
        account_id, user_id = await self._open_account(db_session, "atomic2@example.com")

        async def failing_flush(*args, **kwargs):
            raise OperationalError("INSERT INTO transactions", {}, Exception("disk full"))

        monkeypatch.setattr(db_session, "flush", failing_flush)

        with pytest.raises(InternalError):
            await transaction_service.fund_account(
                db_session,
                account_id,
                user_id,
                "10.00",
                FundingSource("card", "4111111111111111"),
            )

        assert await self._stored_state(session_factory, account_id) == (0, [])

    async def test_failed_commit_raises(self, db_session, session_factory, monkeypatch):
        """A deposit whose commit fails is an error, not a silent success."""
        account_id, user_id = await self._open_account(db_session, "atomic3@example.com")

        async def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "commit", failing_commit)

        with pytest.raises(InternalError):
            await transaction_service.fund_account(
                db_session,
                account_id,
                user_id,
                "10.00",
                FundingSource("card", "4111111111111111"),
            )

        assert await self._stored_state(session_factory, account_id) == (0, [])

    async def test_failed_commit_returns_500(self, authenticated_client, session_factory):
        """Over HTTP, a commit failure must reach the client as internal_error."""
        account_id = await _create_account(authenticated_client)

        async def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        async def get_db_with_failing_commit():
            async with session_factory() as session:
                session.commit = failing_commit
                try:
                    yield session
                except Exception:
                    await session.rollback()
                    raise

        working_get_db = app.dependency_overrides[get_db]
        app.dependency_overrides[get_db] = get_db_with_failing_commit
        try:
            response = await authenticated_client.post(
                f"/accounts/{account_id}/fund",
                json={"amount": "10.00", "funding_source": CARD},
            )
        finally:
            app.dependency_overrides[get_db] = working_get_db

        assert response.status_code == 500
        assert response.json()["error_type"] == "internal_error"
        assert await _state(authenticated_client, account_id) == ("0.00", 0)


class TestFundingSourceStorage:
    """The full funding-source number never sits in the database in plaintext."""

    async def test_number_encrypted_at_rest(self, authenticated_client, session_factory):
        account_id = await _create_account(authenticated_client)
        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": "20.00", "funding_source": BANK},
        )
        txn_id = response.json()["transaction"]["id"]

        async with session_factory() as db:
            result = await db.execute(select(Transaction).where(Transaction.id == txn_id))
            txn = result.scalar_one()

        assert BANK["account_number"].encode() not in txn.funding_source_encrypted
        assert decrypt_value(txn.funding_source_encrypted) == BANK["account_number"]
        assert txn.funding_source_last_four == "6789"
        assert txn.routing_number == BANK["routing_number"]
        assert txn.amount_cents == 2000

    async def test_card_source_drops_routing_number(self, authenticated_client, session_factory):
        account_id = await _create_account(authenticated_client)
        response = await authenticated_client.post(
            f"/accounts/{account_id}/fund",
            json={"amount": "20.00", "funding_source": {**CARD, "routing_number": "021000021"}},
        )
        assert response.status_code == 201
        txn_id = response.json()["transaction"]["id"]

        async with session_factory() as db:
            result = await db.execute(select(Transaction).where(Transaction.id == txn_id))
            assert result.scalar_one().routing_number is None
