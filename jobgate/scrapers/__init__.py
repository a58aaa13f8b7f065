from .greenhouse import GreenhouseScraper
from .headless import HeadlessScraper, LinkListHeadlessScraper
from .remotive import RemotiveScraper
from .rss import RssFeedScraper

__all__ = [
    "GreenhouseScraper",
    "HeadlessScraper",
    "LinkListHeadlessScraper",
    "RemotiveScraper",
    "RssFeedScraper",
]
