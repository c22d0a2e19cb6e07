"""Page-rendering capability.

The source fills its subtitle links in with client-side script, so search and
detail pages are rendered in a headless browser. The pipeline only depends on
the :class:`Renderer` protocol; :class:`PlaywrightRenderer` is the shipped
adapter.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Set

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Response as PlaywrightResponse
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .common import absolutize, is_subtitle_file_url

log = logging.getLogger("he_subtitles.render")

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
]
SUBTITLE_ANCHOR_SELECTOR = 'a[href*="/api/files/sub/"], a[href$=".srt"], a[href$=".zip"]'

# Absolute URLs, internal file-API paths and *.srt / *.zip paths inside arbitrary text
_DISCOVERY_RE = re.compile(
    r"(https?://[^\"'\s]+|/api/files/sub/\d+|/[\w\-/]+\.(?:srt|zip))(?:\?[^\"'\s]*)?",
    re.IGNORECASE,
)

_COLLECT_ANCHORS_JS = """
() => {
  const out = [];
  document.querySelectorAll('a').forEach((a) => {
    const text = (a.textContent || '').trim();
    if (a.href) out.push({ href: a.href, text, kind: 'link' });
  });
  document.querySelectorAll('button, div[role="button"], [data-url], [data-href]').forEach((el) => {
    const href = el.getAttribute('data-url') || el.getAttribute('data-href');
    const text = (el.textContent || '').trim();
    if (href && text) out.push({ href, text, kind: 'button' });
  });
  return out;
}
"""

# Activates the clickable element whose own text is exactly the episode number
_CLICK_EPISODE_JS = """
(epNum) => {
  const clickable = (el) => el && (el.tagName === 'A' || el.tagName === 'BUTTON' ||
    el.getAttribute('role') === 'button' || el.onclick || el.getAttribute('onclick') ||
    getComputedStyle(el).cursor === 'pointer');
  const all = Array.from(document.querySelectorAll('*'));
  for (const el of all) {
    if ((el.textContent || '').trim() === epNum && clickable(el)) { el.click(); return true; }
  }
  for (const el of all) {
    const text = (el.textContent || '').trim();
    const leaf = el.children.length === 0 ||
      Array.from(el.children).every((c) => !(c.textContent || '').trim());
    if (text !== epNum || !leaf) continue;
    let node = el;
    for (let i = 0; i < 3 && node; i++, node = node.parentElement) {
      if (clickable(node)) { node.click(); return true; }
    }
  }
  return false;
}
"""


@dataclass
class Anchor:
    href: str
    text: str = ""
    kind: str = "link"


@dataclass
class ObservedResponse:
    url: str
    content_type: str
    body: str


@dataclass
class RenderResult:
    anchors: List[Anchor] = field(default_factory=list)
    observed_responses: List[ObservedResponse] = field(default_factory=list)
    html: str = ""
    interacted: bool = False


class Renderer(Protocol):
    async def render(self, url: str, ready_selector: Optional[str] = None) -> RenderResult:
        ...

    async def render_and_interact(self, url: str, intent: str) -> RenderResult:
        ...


def discover_links(text: str, base: str) -> List[str]:
    """Opportunistic link discovery in raw response bodies.

    Best-effort supplement to DOM anchors: only subtitle-file URLs survive.
    """
    found: List[str] = []
    seen: Set[str] = set()
    for match in _DISCOVERY_RE.finditer(text or ""):
        url = absolutize(match.group(0), base)
        if url and is_subtitle_file_url(url) and url not in seen:
            seen.add(url)
            found.append(url)
    return found


def parse_episode_intent(intent: str) -> Optional[str]:
    kind, _, value = (intent or "").partition(":")
    if kind != "episode" or not value.strip().isdigit():
        return None
    return str(int(value.strip()))


async def cancel_pending(tasks: List[asyncio.Future]) -> None:
    """Cancel observer tasks still running and reap every outcome."""
    for task in tasks:
        if not task.done():
            task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


class PlaywrightRenderer:
    """Headless Chromium session per call, closed on every exit path."""

    def __init__(
        self,
        source_domain: str,
        timeout: float = 15.0,
        interact_timeout: float = 20.0,
        settle_seconds: float = 1.5,
        poll_attempts: int = 3,
        poll_interval: float = 2.0,
    ) -> None:
        self._api_re = re.compile(re.escape(source_domain) + r"/api/", re.IGNORECASE)
        self.timeout = timeout
        self.interact_timeout = interact_timeout
        self.settle_seconds = settle_seconds
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval

    async def render(self, url: str, ready_selector: Optional[str] = None) -> RenderResult:
        return await self._run(url, timeout=self.timeout, ready_selector=ready_selector)

    async def render_and_interact(self, url: str, intent: str) -> RenderResult:
        return await self._run(url, timeout=self.interact_timeout, intent=intent)

    async def _observe(self, response: PlaywrightResponse, sink: List[ObservedResponse]) -> None:
        if not self._api_re.search(response.url):
            return
        try:
            body = await response.text()
        except PlaywrightError:
            return
        sink.append(ObservedResponse(response.url, response.headers.get("content-type", ""), body))

    async def _run(
        self,
        url: str,
        timeout: float,
        ready_selector: Optional[str] = None,
        intent: Optional[str] = None,
    ) -> RenderResult:
        observed: List[ObservedResponse] = []
        pending: List[asyncio.Future] = []
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(
                headless=True,
                args=LAUNCH_ARGS,
                executable_path=os.getenv("PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH") or None,
            )
            try:
                page = await browser.new_page()
                page.on("response", lambda resp: pending.append(asyncio.ensure_future(self._observe(resp, observed))))
                log.info("render %s", url)
                await page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
                await asyncio.sleep(self.settle_seconds)

                if ready_selector:
                    for attempt in range(self.poll_attempts):
                        if await page.query_selector(ready_selector):
                            break
                        log.info("no matching elements yet (attempt %d/%d)", attempt + 1, self.poll_attempts)
                        await asyncio.sleep(self.poll_interval)

                interacted = False
                episode = parse_episode_intent(intent) if intent else None
                if episode is not None:
                    interacted = bool(await page.evaluate(_CLICK_EPISODE_JS, episode))
                    log.info("episode %s click=%s", episode, interacted)
                    if interacted:
                        try:
                            await page.wait_for_load_state("networkidle", timeout=5000)
                        except PlaywrightTimeoutError:
                            pass
                        await asyncio.sleep(0.8)

                raw_anchors = await page.evaluate(_COLLECT_ANCHORS_JS)
                html = await page.content()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
            finally:
                await cancel_pending(pending)
                await browser.close()

        anchors = [Anchor(href=a.get("href", ""), text=a.get("text", ""), kind=a.get("kind", "link")) for a in raw_anchors]
        return RenderResult(anchors=anchors, observed_responses=observed, html=html, interacted=interacted)


__all__ = [
    "Anchor",
    "ObservedResponse",
    "PlaywrightRenderer",
    "RenderResult",
    "Renderer",
    "cancel_pending",
    "discover_links",
    "parse_episode_intent",
]
