from contextlib import asynccontextmanager
from functools import partial
from typing import Awaitable, Callable, List, Optional

import pytest

from azebot.config import Settings
from azebot.mocks.payment_gateway import MockPaymentGateway
from azebot.models.articles import Article
from azebot.services.container import build_services


@asynccontextmanager
async def _open_services(db_path, gateway=None, articles: Optional[List[Article]] = None):
    app_settings = Settings(
        database_path=str(db_path),
        demo_mode=True,
        sweeper_enabled=False,
    )
    services = build_services(app_settings, gateway=gateway or MockPaymentGateway())
    await services.startup()
    try:
        for article in articles or []:
            await services.articles.save_article(article)
        yield services
    finally:
        await services.shutdown()


@pytest.fixture
def open_services(tmp_path):
    """Async context manager factory: services over a fresh SQLite file."""
    return partial(_open_services, tmp_path / "azebot_test.db")


class _Task:
    def __init__(self, due: float, callback: Callable[[], Awaitable[None]]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by advance(); no wall-clock waits."""

    def __init__(self):
        self.now = 0.0
        self.tasks: List[_Task] = []

    def call_later(self, delay, callback):
        task = _Task(self.now + delay, callback)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> List[_Task]:
        return [t for t in self.tasks if not t.cancelled]

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.due <= target]
            if not due:
                break
            task = min(due, key=lambda t: t.due)
            self.tasks.remove(task)
            self.now = task.due
            await task.callback()
        self.now = target


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()
