"""
Demo Articles

A few published analyses so the payment flow can be exercised in demo
mode without the content-authoring back office.
"""
import logging
from typing import List

from ..models.articles import Article
from ..services.article_store import ArticleStore

logger = logging.getLogger(__name__)


DEMO_ARTICLES: List[Article] = [
    Article(id="demo_eurusd", title="EUR/USD - Analyse technique hebdomadaire", category="forex", price=500),
    Article(id="demo_xauusd", title="XAU/USD - Signaux de la semaine", category="forex", price=1000),
    Article(id="demo_psg_om", title="PSG vs OM - Pronostic", category="football", price=500),
    Article(id="demo_free_news", title="Actualité marchés du jour", category="forex", price=0),
]


async def seed_demo_articles(articles: ArticleStore) -> int:
    """Insert demo articles that do not exist yet. Returns how many were added."""
    added = 0
    for article in DEMO_ARTICLES:
        if await articles.get_article(article.id) is None:
            await articles.save_article(article)
            added += 1
    if added:
        logger.info(f"Seeded {added} demo article(s)")
    return added
