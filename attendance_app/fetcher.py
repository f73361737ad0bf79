"""Fetching subject sheet exports over HTTP."""

import asyncio
import logging
from typing import List, NamedTuple, Optional

import httpx

from attendance_app.models import Sheet

logger = logging.getLogger(__name__)


class SheetSource(NamedTuple):
    subject: str
    url: str


class FetchError(Exception):
    """A subject sheet could not be retrieved."""

    def __init__(self, subject: str, message: str):
        self.subject = subject
        super().__init__(f"{subject}: {message}")


def parse_sheet_sources(value: str) -> List[SheetSource]:
    """
    Parse sheet sources from configuration.

    Format: "Subject=url;Other Subject=url". Entries are separated by ';' and
    split on the first '=' so URLs may carry query strings.

    Args:
        value: Raw configuration string

    Returns:
        List of SheetSource in configuration order
    """
    sources = []
    for item in value.split(';'):
        item = item.strip()
        if not item:
            continue
        if '=' not in item:
            raise ValueError(f"Invalid sheet source '{item}': expected 'Subject=url'")
        subject, url = item.split('=', 1)
        subject, url = subject.strip(), url.strip()
        if not subject or not url:
            raise ValueError(f"Invalid sheet source '{item}': subject and url are required")
        sources.append(SheetSource(subject, url))
    return sources


async def fetch_sheet(client: httpx.AsyncClient, source: SheetSource) -> Sheet:
    """GET one sheet export as text."""
    try:
        response = await client.get(source.url, headers={"Cache-Control": "no-cache"})
    except httpx.HTTPError as e:
        raise FetchError(source.subject, str(e) or type(e).__name__) from e

    if not response.is_success:
        raise FetchError(source.subject, f"HTTP {response.status_code}")

    return Sheet(subject=source.subject, raw_text=response.text)


async def fetch_all_sheets(
    sources: List[SheetSource],
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0
) -> List[Sheet]:
    """
    Fetch every sheet concurrently.

    Results keep configuration order. The first failure cancels the remaining
    requests and is raised to the caller.
    """
    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
            return await fetch_all_sheets(sources, own_client)

    tasks = [asyncio.ensure_future(fetch_sheet(client, source)) for source in sources]
    try:
        return list(await asyncio.gather(*tasks))
    except Exception as e:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.error("Sheet fetch failed: %s", e)
        raise
