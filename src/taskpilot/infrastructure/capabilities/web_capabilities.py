# ============================================
# WEB CAPABILITIES
# ============================================

import asyncio
import re
from typing import Any, Dict

import aiohttp

from taskpilot.core.domain.capabilities import Capability

MAX_CONTENT_CHARS = 5000


def html_to_text(html: str) -> str:
    """Very small HTML stripper: drops script/style blocks and tags, collapses whitespace."""
    text = re.sub(r"<script[^>]*>.*?</script>", "", html, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<style[^>]*>.*?</style>", "", text, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    return " ".join(text.split())


class WebFetchCapability(Capability):
    """Fetch content from URLs"""

    def __init__(self, timeout_seconds: float = 15.0, max_chars: int = MAX_CONTENT_CHARS):
        self.timeout_seconds = timeout_seconds
        self.max_chars = max_chars

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return "Fetch a URL over HTTP(S) and return its text content"

    @property
    def category(self) -> str:
        return "web"

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {"type": "string", "pattern": "^https?://"},
            },
            "required": ["url"],
        }

    async def invoke(self, params: Dict[str, Any]) -> Dict[str, Any]:
        url = params["url"]
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    content = await response.text()
                    content_type = response.headers.get("Content-Type", "")

                    if "text/html" in content_type:
                        text = html_to_text(content)
                    else:
                        text = content

                    if response.status >= 400:
                        return {
                            "success": False,
                            "error": f"HTTP {response.status} fetching {url}",
                            "status": response.status,
                        }

                    return {
                        "success": True,
                        "data": {
                            "url": url,
                            "status": response.status,
                            "content": text[: self.max_chars],
                            "content_type": content_type,
                            "length": len(content),
                        },
                    }

        except asyncio.TimeoutError:
            return {"success": False, "error": "Request timed out"}
        except aiohttp.ClientError as e:
            return {"success": False, "error": str(e)}
