"""
Service Container

Builds the payment services once at application start and hands them to
the API layer through app.state. Tests build their own container against
a temporary database and the mock gateway.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..config import Settings
from ..db.init_db import create_engine_for, create_session_factory, initialize_database
from ..mocks.payment_gateway import MockPaymentGateway
from .article_store import ArticleStore
from .gateway_client import GatewayClient, PaymentGateway
from .payment_session import PaymentSessionInitiator
from .reconciliation import ReconciliationEngine
from .scheduler import ReconciliationSweeper
from .status_resolver import StatusResolver
from .transaction_store import TransactionStore

logger = logging.getLogger(__name__)


@dataclass
class PaymentServices:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    gateway: PaymentGateway
    articles: ArticleStore
    transactions: TransactionStore
    resolver: StatusResolver
    initiator: PaymentSessionInitiator
    reconciliation: ReconciliationEngine
    sweeper: ReconciliationSweeper

    async def startup(self) -> None:
        await initialize_database(self.engine)
        if self.settings.sweeper_enabled:
            self.sweeper.start()

    async def shutdown(self) -> None:
        self.sweeper.shutdown(wait=True)
        await self.engine.dispose()


def build_services(
    app_settings: Settings,
    gateway: Optional[PaymentGateway] = None
) -> PaymentServices:
    """
    Wire stores, gateway, resolver, initiator, engine and sweeper.

    Args:
        app_settings: Settings instance
        gateway: Gateway override; defaults to the mock gateway in demo mode
            and the HTTPS client otherwise
    """
    if gateway is None:
        if app_settings.demo_mode:
            gateway = MockPaymentGateway(auto_approve_after=2)
            logger.info("Demo mode: using mock payment gateway")
        else:
            gateway = GatewayClient(
                base_url=app_settings.gateway_base_url,
                api_key=app_settings.gateway_api_key,
                timeout=app_settings.gateway_timeout_seconds,
            )

    engine = create_engine_for(app_settings.database_path)
    session_factory = create_session_factory(engine)
    articles = ArticleStore(session_factory)
    transactions = TransactionStore(session_factory)
    resolver = StatusResolver(gateway, transactions)
    initiator = PaymentSessionInitiator(
        articles,
        transactions,
        gateway,
        currency=app_settings.currency,
        frontend_base_url=app_settings.frontend_base_url,
        success_path=app_settings.success_path,
        cancel_path=app_settings.cancel_path,
    )
    reconciliation = ReconciliationEngine(articles, transactions, resolver)
    sweeper = ReconciliationSweeper(
        reconciliation,
        transactions,
        interval_seconds=app_settings.sweeper_interval_seconds,
        grace_seconds=app_settings.sweeper_grace_seconds,
    )

    return PaymentServices(
        settings=app_settings,
        engine=engine,
        session_factory=session_factory,
        gateway=gateway,
        articles=articles,
        transactions=transactions,
        resolver=resolver,
        initiator=initiator,
        reconciliation=reconciliation,
        sweeper=sweeper,
    )
