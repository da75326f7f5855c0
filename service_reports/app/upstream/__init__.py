"""
Upstream package for Reports Service.

Thin client for the CMS content API. Fetches the complete live collection
page by page; failures abort the whole fetch and are never retried.
"""

from .collection_fetcher import CollectionFetcher, PAGE_SIZE

__all__ = ["CollectionFetcher", "PAGE_SIZE"]
