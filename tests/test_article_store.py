import asyncio
from datetime import datetime

import pytest

from azebot.exceptions import WriteConflictError
from azebot.models.articles import Article, PaymentFields

_ARTICLE = Article(id="A1", title="PSG vs OM", category="football", price=500)


def _fields(transaction_id: str) -> PaymentFields:
    return PaymentFields(
        payment_date=datetime(2025, 10, 17, 14, 35),
        payment_amount=500,
        payment_method="mobile_money",
        payment_transaction_id=transaction_id,
    )


def test_save_article_keeps_payment_fields_on_update(open_services) -> None:
    async def scenario():
        async with open_services(articles=[_ARTICLE]) as services:
            txn = await services.transactions.create("A1", "U1", 500)
            await services.articles.compare_and_set_payment_status("A1", "pending", _fields(txn.transaction_id))
            await services.articles.save_article(
                Article(id="A1", title="PSG vs OM (maj)", category="football", price=700)
            )
            return await services.articles.get_article("A1")

    article = asyncio.run(scenario())
    assert article.title == "PSG vs OM (maj)"
    assert article.price == 700
    assert article.payment_status == "paid"


def test_compare_and_set_unlocks_and_credits(open_services) -> None:
    async def scenario():
        async with open_services(articles=[_ARTICLE]) as services:
            txn = await services.transactions.create("A1", "U1", 500)
            await services.transactions.update_status(txn.transaction_id, "pending")
            article = await services.articles.compare_and_set_payment_status(
                "A1", "pending", _fields(txn.transaction_id)
            )
            return article, await services.transactions.get(txn.transaction_id)

    article, txn = asyncio.run(scenario())
    assert article.payment_status == "paid"
    assert article.payment_amount == 500
    assert article.payment_method == "mobile_money"
    assert article.payment_transaction_id == txn.transaction_id
    assert txn.status == "approved"
    assert txn.credited is True
    assert txn.mode == "mobile_money"


def test_compare_and_set_conflicts_once_paid(open_services) -> None:
    async def scenario():
        async with open_services(articles=[_ARTICLE]) as services:
            first = await services.transactions.create("A1", "U1", 500)
            second = await services.transactions.create("A1", "U2", 500)
            await services.articles.compare_and_set_payment_status("A1", "pending", _fields(first.transaction_id))
            with pytest.raises(WriteConflictError):
                await services.articles.compare_and_set_payment_status(
                    "A1", "pending", _fields(second.transaction_id)
                )
            return (
                await services.articles.get_article("A1"),
                await services.transactions.get(second.transaction_id),
            )

    article, second = asyncio.run(scenario())
    assert article.payment_transaction_id != second.transaction_id
    assert second.credited is False


def test_compare_and_set_rolls_back_when_transaction_not_creditable(open_services) -> None:
    async def scenario():
        async with open_services(articles=[_ARTICLE]) as services:
            txn = await services.transactions.create("A1", "U1", 500)
            await services.transactions.update_status(txn.transaction_id, "declined")
            with pytest.raises(WriteConflictError):
                await services.articles.compare_and_set_payment_status(
                    "A1", "pending", _fields(txn.transaction_id)
                )
            return await services.articles.get_article("A1")

    article = asyncio.run(scenario())
    assert article.payment_status == "pending"
    assert article.payment_transaction_id is None


def test_subscribers_notified_once_per_unlock(open_services) -> None:
    seen = []

    def broken_listener(article):
        raise RuntimeError("boom")

    async def scenario():
        async with open_services(articles=[_ARTICLE, Article(id="A2", price=500)]) as services:
            subscription = services.articles.subscribe("A1", seen.append)
            first = await services.transactions.create("A1", "U1", 500)
            await services.articles.compare_and_set_payment_status("A1", "pending", _fields(first.transaction_id))
            subscription.unsubscribe()
            subscription.unsubscribe()

            services.articles.subscribe("A2", broken_listener)
            other = await services.transactions.create("A2", "U1", 500)
            # A failing listener must not break the unlock
            return await services.articles.compare_and_set_payment_status(
                "A2", "pending", _fields(other.transaction_id)
            )

    a2 = asyncio.run(scenario())
    assert [a.id for a in seen] == ["A1"]
    assert seen[0].payment_status == "paid"
    assert a2.payment_status == "paid"
