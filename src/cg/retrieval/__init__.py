"""Website content retrieval."""

from cg.retrieval.fetch import FetchedPage, WebFetcher, extract_page

__all__ = ["FetchedPage", "WebFetcher", "extract_page"]
