"""ORM models. Importing this package registers every table on Base.metadata."""

from production_kernel.models.article import Article, ArticleFloorQuantity
from production_kernel.models.article_log import ArticleLog
from production_kernel.models.production_order import ProductionOrder
from production_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "Article",
    "ArticleFloorQuantity",
    "ArticleLog",
    "ProductionOrder",
    "SequenceCounter",
]
