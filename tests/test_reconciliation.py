import asyncio
from datetime import datetime

from azebot.mocks.payment_gateway import MockPaymentGateway
from azebot.models.articles import Article

_PAID_ARTICLE = Article(id="A1", title="EUR/USD", category="forex", price=500)
_OTHER_ARTICLE = Article(id="A2", title="PSG vs OM", category="football", price=500)
_FREE_ARTICLE = Article(id="F1", title="Brèves", category="forex", price=0)


def test_free_article_unlocks_without_gateway(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_FREE_ARTICLE]) as services:
            return await services.reconciliation.reconcile("F1", "U1")

    result = asyncio.run(scenario())
    assert result.unlocked
    assert result.reason == "free"
    assert gateway.status_calls == 0


def test_approved_payment_unlocks_article(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            session = await services.initiator.initiate("A1", "U1")
            gateway.settle(session.transaction_id, "approved", mode="mobile_money", amount=500)
            result = await services.reconciliation.reconcile("A1", "U1")
            return (
                session,
                result,
                await services.articles.get_article("A1"),
                await services.transactions.get(session.transaction_id),
            )

    session, result, article, txn = asyncio.run(scenario())

    assert result.unlocked
    assert result.credited is True
    assert result.reason == "payment_confirmed"
    assert result.transaction_id == session.transaction_id
    assert article.payment_status == "paid"
    assert article.payment_amount == 500
    assert article.payment_method == "mobile_money"
    assert article.payment_transaction_id == session.transaction_id
    assert isinstance(article.payment_date, datetime)
    assert txn.status == "approved"
    assert txn.credited is True


def test_paid_article_is_a_pure_read(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            session = await services.initiator.initiate("A1", "U1")
            gateway.settle(session.transaction_id, "approved", mode="card", amount=500)
            await services.reconciliation.reconcile("A1", "U1")
            before = await services.articles.get_article("A1")
            calls = gateway.status_calls
            again = await services.reconciliation.reconcile("A1", "U1")
            stranger = await services.reconciliation.reconcile("A1", "U9")
            after = await services.articles.get_article("A1")
            return before, after, again, stranger, gateway.status_calls - calls

    before, after, again, stranger, extra_calls = asyncio.run(scenario())
    assert again.unlocked and again.reason == "already_paid"
    assert again.credited is False
    assert stranger.unlocked
    assert extra_calls == 0
    assert after == before


def test_no_transaction_stays_locked(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_OTHER_ARTICLE]) as services:
            return await services.reconciliation.reconcile("A2", "U2")

    result = asyncio.run(scenario())
    assert result.state == "locked"
    assert result.reason == "no_transaction"
    assert result.retry is False
    assert gateway.status_calls == 0


def test_unknown_article_is_locked(open_services) -> None:
    async def scenario():
        async with open_services() as services:
            return await services.reconciliation.reconcile("ghost", "U1")

    result = asyncio.run(scenario())
    assert result.state == "locked"
    assert result.reason == "article_not_found"


def test_pending_and_unknown_ask_for_retry(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            await services.initiator.initiate("A1", "U1")
            pending = await services.reconciliation.reconcile("A1", "U1")
            gateway.unavailable = True
            unknown = await services.reconciliation.reconcile("A1", "U1")
            return pending, unknown, await services.articles.get_article("A1")

    pending, unknown, article = asyncio.run(scenario())
    assert pending.state == "locked" and pending.retry
    assert pending.reason == "awaiting_confirmation"
    assert unknown.state == "locked" and unknown.retry
    assert unknown.reason == "gateway_unknown"
    assert unknown.failed is False
    assert article.payment_status == "pending"


def test_declined_never_unlocks(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            session = await services.initiator.initiate("A1", "U1")
            gateway.settle(session.transaction_id, "declined")
            results = [await services.reconciliation.reconcile("A1", "U1") for _ in range(3)]
            return (
                results,
                await services.articles.get_article("A1"),
                await services.transactions.get(session.transaction_id),
            )

    results, article, txn = asyncio.run(scenario())
    first = results[0]
    assert first.state == "locked"
    assert first.retry is False
    assert first.failed
    assert first.reason == "payment_declined"
    assert all(r.state == "locked" for r in results)
    assert article.payment_status == "pending"
    assert txn.status == "declined"
    assert txn.credited is False


def test_expired_payment_stays_locked(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            session = await services.initiator.initiate("A1", "U1")
            gateway.settle(session.transaction_id, "expired")
            return await services.reconciliation.reconcile("A1", "U1")

    result = asyncio.run(scenario())
    assert result.reason == "payment_expired"
    assert result.retry is False


def test_new_attempt_after_decline_can_unlock(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            first = await services.initiator.initiate("A1", "U1")
            gateway.settle(first.transaction_id, "declined")
            await services.reconciliation.reconcile("A1", "U1")
            second = await services.initiator.initiate("A1", "U1")
            gateway.settle(second.transaction_id, "approved", amount=500)
            return second, await services.reconciliation.reconcile("A1", "U1")

    second, result = asyncio.run(scenario())
    assert result.unlocked
    assert result.transaction_id == second.transaction_id


def test_concurrent_reconciles_credit_once(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            session = await services.initiator.initiate("A1", "U1")
            gateway.settle(session.transaction_id, "approved", mode="card", amount=500)
            results = await asyncio.gather(
                *(services.reconciliation.reconcile("A1", "U1") for _ in range(5))
            )
            return results, await services.articles.get_article("A1")

    results, article = asyncio.run(scenario())
    assert all(r.unlocked for r in results)
    assert sum(1 for r in results if r.credited) == 1
    assert article.payment_status == "paid"


def test_competing_users_credit_one_transaction(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            first = await services.initiator.initiate("A1", "U1")
            second = await services.initiator.initiate("A1", "U2")
            gateway.settle(first.transaction_id, "approved", amount=500)
            gateway.settle(second.transaction_id, "approved", amount=500)
            results = await asyncio.gather(
                services.reconciliation.reconcile("A1", "U1"),
                services.reconciliation.reconcile("A1", "U2"),
            )
            credited = [
                txn for txn in (
                    await services.transactions.get(first.transaction_id),
                    await services.transactions.get(second.transaction_id),
                ) if txn.credited
            ]
            return results, credited, await services.articles.get_article("A1")

    results, credited, article = asyncio.run(scenario())
    assert all(r.unlocked for r in results)
    assert len(credited) == 1
    assert article.payment_transaction_id == credited[0].transaction_id


def test_gateway_metadata_for_other_article_is_not_credited(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE]) as services:
            session = await services.initiator.initiate("A1", "U1")
            gateway.settle(session.transaction_id, "approved", amount=500)
            gateway.sessions[session.transaction_id]["metadata"]["article_id"] = "A2"
            first = await services.reconciliation.reconcile("A1", "U1")
            calls = gateway.status_calls
            again = await services.reconciliation.reconcile("A1", "U1")
            return (
                first,
                again,
                gateway.status_calls - calls,
                await services.articles.get_article("A1"),
                await services.transactions.get(session.transaction_id),
                await services.reconciliation.access("A1", "U1"),
            )

    result, again, extra_calls, article, txn, access = asyncio.run(scenario())
    assert result.state == "locked"
    assert result.reason == "transaction_mismatch"
    assert result.retry is False
    assert article.payment_status == "pending"
    assert txn.status == "approved"
    assert txn.credited is False
    assert again.reason == "no_transaction"
    assert extra_calls == 0
    assert access.state == "locked"


def test_access_reads_local_state_only(open_services) -> None:
    gateway = MockPaymentGateway()

    async def scenario():
        async with open_services(gateway=gateway, articles=[_PAID_ARTICLE, _FREE_ARTICLE]) as services:
            free = await services.reconciliation.access("F1", "U1")
            session = await services.initiator.initiate("A1", "U1")
            gateway.settle(session.transaction_id, "approved", amount=500)
            before = await services.reconciliation.access("A1", "U1")
            await services.reconciliation.reconcile("A1", "U1")
            after = await services.reconciliation.access("A1", "U1")
            missing = await services.reconciliation.access("ghost", "U1")
            return free, before, after, missing

    free, before, after, missing = asyncio.run(scenario())
    assert free.unlocked and free.reason == "free"
    assert before.state == "locked" and before.reason == "not_paid"
    assert after.unlocked and after.reason == "already_paid"
    assert missing.reason == "article_not_found"
