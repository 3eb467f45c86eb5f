"""
APScheduler Configuration for the Reconciliation Sweeper

Periodically reconciles transactions that are still created/pending after
a grace period, so a payment confirmed while nobody is polling still
unlocks its article. Disabled by default; confirmation is normally driven
by the viewing client.

The sweeper goes through the same ReconciliationEngine and the same
conditional unlock as client-driven reconciles, so running both at once
is safe.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..models.payments import ReconcileResult
from .reconciliation import ReconciliationEngine
from .transaction_store import TransactionStore

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "reconcile_unsettled_transactions"


class ReconciliationSweeper:
    """
    Interval job over unsettled transactions.

    Args:
        engine: ReconciliationEngine used for each (article, user) pair
        transactions: TransactionStore listing unsettled transactions
        interval_seconds: Seconds between sweeps
        grace_seconds: Minimum transaction age before the sweeper looks at it
        batch_size: Max transactions per sweep
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        transactions: TransactionStore,
        interval_seconds: int = 60,
        grace_seconds: int = 120,
        batch_size: int = 100
    ):
        self._engine = engine
        self._transactions = transactions
        self.interval_seconds = interval_seconds
        self.grace_seconds = grace_seconds
        self.batch_size = batch_size
        self._scheduler: Optional[AsyncIOScheduler] = None

    def _initialize_scheduler(self) -> AsyncIOScheduler:
        """
        Configure APScheduler.

        Configuration:
        - AsyncIOScheduler for async job execution on the app's event loop
        - In-memory job store: the job is re-registered at every startup
        - Coalesce: True (skip missed runs)
        - Max instances: 1 (sweeps never overlap)
        """
        scheduler = AsyncIOScheduler(
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": self.interval_seconds,
            },
            timezone="UTC",
        )
        scheduler.add_job(
            self.sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="Reconcile unsettled transactions",
            replace_existing=True,
        )
        logger.info(f"Reconciliation sweeper configured (every {self.interval_seconds}s)")
        return scheduler

    def start(self) -> None:
        """
        Start the sweeper.

        Should be called during FastAPI app startup.
        """
        if self._scheduler is None:
            self._scheduler = self._initialize_scheduler()
        if not self._scheduler.running:
            self._scheduler.start()
            next_run = self._scheduler.get_job(SWEEP_JOB_ID).next_run_time
            logger.info(f"Reconciliation sweeper started, next_run={next_run}")
        else:
            logger.warning("Reconciliation sweeper already running")

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the sweeper.

        Args:
            wait: Wait for a running sweep to complete before shutdown
        """
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info(f"Reconciliation sweeper shutdown (wait={wait})")

    @property
    def running(self) -> bool:
        return bool(self._scheduler and self._scheduler.running)

    async def sweep(self) -> List[ReconcileResult]:
        """
        Reconcile every distinct (article, user) pair with an unsettled
        transaction older than the grace period.

        - Open transactions of an article that ends up unlocked by another
          transaction get their final gateway status recorded
        - Every swept transaction still open afterwards is touched, so it
          moves behind the rest of the backlog for the next sweep
        - A failure on one pair is logged and does not stop the sweep
        """
        cutoff = datetime.utcnow() - timedelta(seconds=self.grace_seconds)
        unsettled = await self._transactions.list_unsettled(cutoff, limit=self.batch_size)

        by_pair: Dict[Tuple[str, str], Optional[ReconcileResult]] = {}
        recorded = 0
        for transaction in unsettled:
            pair = (transaction.article_id, transaction.user_id)
            try:
                if pair not in by_pair:
                    by_pair[pair] = None
                    by_pair[pair] = await self._engine.reconcile(*pair)
                result = by_pair[pair]
                if (
                    result is not None
                    and result.unlocked
                    and result.transaction_id != transaction.transaction_id
                ):
                    if await self._engine.record_outcome(transaction):
                        recorded += 1
            except Exception as e:
                logger.error(
                    f"Sweep failed for {transaction.transaction_id} "
                    f"(article={pair[0]} user={pair[1]}): {e}",
                    exc_info=True
                )

        await self._transactions.touch([t.transaction_id for t in unsettled])

        results = [r for r in by_pair.values() if r is not None]
        unlocked = sum(1 for r in results if r.unlocked)
        if results:
            logger.info(
                f"Sweep reconciled {len(results)} pair(s), {unlocked} unlocked, "
                f"{recorded} settled without credit"
            )
        return results
