"""Read-only query helpers over persisted articles."""

from production_kernel.selectors.article_selector import ArticleSelector, FloorStatus

__all__ = ["ArticleSelector", "FloorStatus"]
