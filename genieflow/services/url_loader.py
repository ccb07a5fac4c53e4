"""Fetches reference content for URL loader nodes."""

from __future__ import annotations

import logging
import re
from typing import Protocol
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from genieflow.config import settings
from genieflow.models.context import ExternalContent

logger = logging.getLogger("genieflow.url_loader")

USER_AGENT = "genieflow-url-loader/1.0"
MARKDOWN_TYPES = ("text/markdown", "text/plain", "text/x-markdown")
TRUNCATION_MARKER = "\n\n[Content truncated...]"


class ContentFetcher(Protocol):
    async def fetch(self, url: str) -> ExternalContent:
        ...


def validate_url(url: str) -> str:
    """HTTP/HTTPS only."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"Only HTTP/HTTPS URLs are supported, got: {parsed.scheme or 'none'}")
    if not parsed.hostname:
        raise ValueError("URL has no hostname")
    return url


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header"]):
        tag.decompose()
    return soup.get_text(separator="\n", strip=True)


def clean_content(content: str, max_chars: int) -> str:
    content = re.sub(r"\n{3,}", "\n\n", content).strip()
    if len(content) > max_chars:
        content = content[:max_chars] + TRUNCATION_MARKER
    return content


class URLLoader:
    """Fetch a page as text, preferring a ``.md`` sibling when the site publishes one."""

    def __init__(
        self,
        timeout: float | None = None,
        max_chars: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = settings.url_fetch_timeout_seconds if timeout is None else timeout
        self.max_chars = settings.url_max_chars if max_chars is None else max_chars
        self.transport = transport

    async def fetch(self, url: str) -> ExternalContent:
        try:
            validate_url(url)
        except ValueError as e:
            return ExternalContent(url=url, error=str(e))

        md_url = url[:-1] + ".md" if url.endswith("/") else url + ".md"
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                transport=self.transport,
            ) as client:
                text = await self._fetch_markdown(client, md_url)
                if text is not None:
                    return ExternalContent(url=md_url, content=clean_content(text, self.max_chars))

                response = await client.get(url, headers={"Accept": "text/html, application/xhtml+xml, */*"})
                if response.status_code >= 400:
                    return ExternalContent(
                        url=url,
                        error=f"Failed to fetch URL: {response.status_code} {response.reason_phrase}",
                    )
                body = response.text
                content_type = response.headers.get("content-type", "")
                stripped = body.lstrip()
                if "text/html" in content_type or stripped.startswith("<!") or stripped.startswith("<html"):
                    body = html_to_text(body)
        except httpx.HTTPError as e:
            logger.warning("URL fetch failed for %s: %s", url, e)
            return ExternalContent(url=url, error=f"Failed to fetch URL: {e}")

        return ExternalContent(url=url, content=clean_content(body, self.max_chars))

    async def _fetch_markdown(self, client: httpx.AsyncClient, md_url: str) -> str | None:
        try:
            response = await client.get(md_url, headers={"Accept": "text/markdown, text/plain, */*"})
        except httpx.HTTPError:
            logger.debug("No markdown variant at %s", md_url)
            return None
        content_type = response.headers.get("content-type", "")
        if response.status_code == 200 and any(t in content_type for t in MARKDOWN_TYPES):
            return response.text
        return None
