from foodcrawl.models.crawl_state import CrawlStateRecord
from foodcrawl.models.submission import Submission

__all__ = [
    "Submission",
    "CrawlStateRecord",
]
