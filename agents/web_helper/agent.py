"""
Web Helper Agent

Fetches web pages and extracts readable content from them.
- Validate URLs (scheme, host)
- Fetch HTML over HTTP(S)
- Parse title, description, text and links
- Format extracted content as Markdown or plain text

The shared HTTP client is spawned by the agent's starter at bootstrap and
closed by the registry at shutdown.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from agents.shared.base_agent import Agent
from agents.shared.llm_client import LanguageModel
from agents.shared.schemas import ToolResult
from agents.shared.tools import Tool, ToolRegistry

logger = logging.getLogger(__name__)

WEB_HELPER_AGENT_NAME = "web-helper-agent"

WEB_HELPER_SYSTEM_PROMPT = (
    "You are a web helper agent.\n"
    "You read web pages on the user's behalf: validate the URL, fetch the page, "
    "extract its content and summarize what the user asked about.\n"
    "Never invent page content you have not fetched.\n"
    "Format replies in Markdown."
)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; ConductorWebHelper/1.0)"
ALLOWED_SCHEMES = ("http", "https")
MAX_TEXT_CHARS = 4000
MAX_LINKS = 20


class WebTools:
    """
    Web tool handlers sharing one httpx.AsyncClient.

    The client is created by ``start`` (the agent starter) unless one is
    injected, which is how tests pass a client over httpx.MockTransport.
    Fetching before the client exists raises RuntimeError.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_text_chars: int = MAX_TEXT_CHARS
    ):
        self.client = client
        self.timeout = timeout
        self.max_text_chars = max_text_chars

    async def start(self) -> List[Any]:
        """Agent starter: spawn the shared HTTP client"""
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": DEFAULT_USER_AGENT}
            )
            logger.info("Web helper HTTP client started")
        return [self.client]

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def validate_url(self, url: str) -> ToolResult:
        """
        Check that a URL is absolute http(s) with a host.

        Returns:
            ToolResult with structured {"valid", "url", "reason"}; is_error when invalid
        """
        candidate = url.strip()
        parsed = urlparse(candidate)

        reason = ""
        if parsed.scheme not in ALLOWED_SCHEMES:
            reason = f"unsupported scheme '{parsed.scheme or '(none)'}', expected http or https"
        elif not parsed.netloc:
            reason = "missing host"

        valid = not reason
        report = {"valid": valid, "url": candidate, "reason": reason or "ok"}
        text = f"URL is valid: {candidate}" if valid else f"URL is invalid: {candidate} ({reason})"
        return ToolResult.from_text(text, is_error=not valid, structured_content=report)

    async def fetch_html(self, url: str) -> ToolResult:
        """
        Fetch a page.

        Returns:
            ToolResult summarizing status, final URL, size and title; the HTML
            itself is kept in structured content
        """
        validation = self.validate_url(url)
        if validation.is_error:
            return validation

        response = await self._get(url)
        if response.is_error:
            return ToolResult.from_text(
                f"HTTP error {response.status_code} while fetching {response.url}",
                is_error=True,
                structured_content={"status_code": response.status_code, "final_url": str(response.url)}
            )

        html = response.text
        title = _title(BeautifulSoup(html, "html.parser"))
        data = {
            "final_url": str(response.url),
            "status_code": response.status_code,
            "content_type": response.headers.get("content-type", ""),
            "size": len(html),
            "title": title,
            "html": html,
        }
        logger.info(f"Fetched {data['final_url']} ({data['size']} chars)")
        return ToolResult.from_text(
            f"Fetched {data['final_url']}: status {data['status_code']}, "
            f"{data['size']} characters, title: {title or '(none)'}",
            structured_content=data
        )

    async def parse_content(
        self,
        url: Optional[str] = None,
        html: Optional[str] = None,
        selector: Optional[str] = None,
        max_links: int = MAX_LINKS
    ) -> ToolResult:
        """
        Extract readable content from a page (fetched from url, or given as html).

        Args:
            url: Page to fetch and parse
            html: Raw HTML to parse instead of fetching
            selector: Optional CSS selector restricting the text extracted
            max_links: Maximum number of links returned

        Returns:
            ToolResult with the extracted text; structured title/description/links
        """
        base_url = url
        if html is None:
            if not url:
                return ToolResult.from_text("Either url or html is required", is_error=True)
            fetched = await self.fetch_html(url)
            if fetched.is_error:
                return fetched
            html = fetched.structured_content["html"]
            base_url = fetched.structured_content["final_url"]

        soup = BeautifulSoup(html, "html.parser")
        for element in soup(["script", "style", "noscript"]):
            element.decompose()

        if selector:
            elements = soup.select(selector)
            text = "\n".join(element.get_text(" ", strip=True) for element in elements)
        else:
            root = soup.body or soup
            text = root.get_text(separator="\n", strip=True)

        truncated = len(text) > self.max_text_chars
        if truncated:
            text = text[:self.max_text_chars]

        links = []
        for link in soup.find_all("a", href=True):
            href = urljoin(base_url, link["href"]) if base_url else link["href"]
            links.append({"text": link.get_text(strip=True), "href": href})
            if len(links) >= max_links:
                break

        data = {
            "title": _title(soup),
            "description": _description(soup),
            "text": text,
            "truncated": truncated,
            "links": links,
        }
        return ToolResult.from_text(text or "(page has no readable text)", structured_content=data)

    def format_result(
        self,
        content: str,
        title: Optional[str] = None,
        url: Optional[str] = None,
        format: str = "markdown"
    ) -> str:
        """
        Format extracted content for the final answer.

        Args:
            content: Body text
            title: Page title
            url: Source URL
            format: "markdown" or "text"
        """
        if format == "text":
            header = "\n".join(line for line in (title, url) if line)
            return f"{header}\n\n{content.strip()}" if header else content.strip()

        parts = []
        if title:
            parts.append(f"## {title}")
        if url:
            parts.append(f"Source: <{url}>")
        parts.append(content.strip())
        return "\n\n".join(parts)

    async def _get(self, url: str) -> httpx.Response:
        if self.client is None:
            raise RuntimeError("web helper HTTP client is not started; bootstrap the registry first")
        return await self.client.get(url)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def registry(self, timeout: Optional[float] = None) -> ToolRegistry:
        return ToolRegistry(
            tools=[
                Tool(
                    name="validate_url",
                    description="Check that a URL is an absolute http(s) URL with a host.",
                    handler=self.validate_url,
                    input_schema={
                        "type": "object",
                        "properties": {"url": {"type": "string", "description": "URL to check"}},
                        "required": ["url"],
                    }
                ),
                Tool(
                    name="fetch_html",
                    description="Fetch a web page and report its status, final URL, size and title.",
                    handler=self.fetch_html,
                    input_schema={
                        "type": "object",
                        "properties": {"url": {"type": "string", "description": "Page URL"}},
                        "required": ["url"],
                    }
                ),
                Tool(
                    name="parse_content",
                    description=(
                        "Fetch a page (or take raw HTML) and extract its title, description, "
                        "readable text and links. Optionally restrict text to a CSS selector."
                    ),
                    handler=self.parse_content,
                    input_schema={
                        "type": "object",
                        "properties": {
                            "url": {"type": "string", "description": "Page URL"},
                            "html": {"type": "string", "description": "Raw HTML instead of a URL"},
                            "selector": {"type": "string", "description": "CSS selector"},
                            "max_links": {"type": "integer", "description": "Maximum links returned"},
                        },
                    }
                ),
                Tool(
                    name="format_result",
                    description="Format extracted page content as Markdown or plain text.",
                    handler=self.format_result,
                    input_schema={
                        "type": "object",
                        "properties": {
                            "content": {"type": "string", "description": "Body text"},
                            "title": {"type": "string", "description": "Page title"},
                            "url": {"type": "string", "description": "Source URL"},
                            "format": {"type": "string", "description": "markdown or text"},
                        },
                        "required": ["content"],
                    }
                ),
            ],
            timeout=timeout
        )


def _title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return ""


def _description(soup: BeautifulSoup) -> str:
    meta = soup.find("meta", attrs={"name": "description"})
    if meta and meta.get("content"):
        return meta["content"].strip()
    return ""


def build_web_helper_agent(
    llm: LanguageModel,
    web_tools: Optional[WebTools] = None,
    tool_timeout: Optional[float] = None
) -> Agent:
    """
    Build the web helper agent.

    Args:
        llm: LLM capability
        web_tools: Tool handlers (a fresh WebTools when omitted)
        tool_timeout: Deadline for each tool call

    Returns:
        Agent whose starter spawns the shared HTTP client
    """
    web_tools = web_tools or WebTools(timeout=tool_timeout or 30.0)
    return Agent(
        name=WEB_HELPER_AGENT_NAME,
        llm=llm,
        description=(
            "Reads web pages: validates URLs, fetches HTML, extracts titles, text and "
            "links, and summarizes page content."
        ),
        keywords=["web", "url", "website", "page", "html", "fetch"],
        aliases=["web-helper"],
        tools=web_tools.registry(timeout=tool_timeout),
        system_prompt=WEB_HELPER_SYSTEM_PROMPT,
        starter=web_tools.start
    )
