"""Helpers for turning editor input into catalog payload fields."""

import re
from typing import Optional

from .models import DayPlan
from .notifications import Notifier

DAY_HEADER = re.compile(r"Day \d+:", re.IGNORECASE)
IMAGE_EXTENSION = re.compile(r"\.(jpg|jpeg|png|gif|webp|bmp|svg)(\?.*)?$", re.IGNORECASE)
IMAGE_HOSTS = re.compile(r"(unsplash\.com|pexels\.com|pixabay\.com|cloudinary\.com|imgur\.com)")

IMAGE_URL_WARNING = (
    "Please provide a direct image URL (e.g., ends with .jpg, .png) or use file upload"
)


def parse_highlights(text: str) -> list[str]:
    """One highlight per non-blank line."""
    return [line.strip() for line in text.splitlines() if line.strip()]


def parse_days(text: str) -> list[DayPlan]:
    """
    Split "Day N:" blocks into day plans.

    Days are renumbered 1..n in the order they appear; each non-blank line
    of a block is one activity.

    >>> [d.day for d in parse_days("Day 1: Fort\\nDay 3: Lake")]
    [1, 2]
    """
    blocks = [block for block in DAY_HEADER.split(text) if block.strip()]
    return [
        DayPlan(day=index, activities=parse_highlights(block))
        for index, block in enumerate(blocks, start=1)
    ]


def looks_like_image_url(url: str) -> bool:
    """Image file extension or a known image host."""
    url = url.strip()
    return bool(IMAGE_EXTENSION.search(url) or IMAGE_HOSTS.search(url))


def check_image_url(url: Optional[str], notifier: Notifier) -> Optional[str]:
    """
    Normalize an image URL, warning (not rejecting) when it does not look
    like a direct image link.
    """
    if not url or not url.strip():
        return None
    url = url.strip()
    if not looks_like_image_url(url):
        notifier.warning(IMAGE_URL_WARNING)
    return url
