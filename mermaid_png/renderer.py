from __future__ import annotations

import itertools
import logging
import re
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from playwright.async_api import Browser, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

log = logging.getLogger(__name__)

_counter = itertools.count(1)

_PAGE_HTML = '<!doctype html><html><head><meta charset="utf-8"></head><body><div id="container"></div></body></html>'

# Renders inside the page and hands back standalone XML with absolute size.
_RENDER_JS = """
async ({ id, code, config }) => {
  window.mermaid.initialize(config);
  const { svg } = await window.mermaid.render(id, code, document.getElementById("container"));
  const holder = document.createElement("div");
  holder.innerHTML = svg;
  const el = holder.querySelector("svg");
  if (!el) {
    throw new Error("Mermaid returned no <svg> element");
  }
  const vb = el.viewBox && el.viewBox.baseVal;
  if (vb && vb.width > 0 && vb.height > 0) {
    for (const [attr, size] of [["width", vb.width], ["height", vb.height]]) {
      const current = el.getAttribute(attr);
      if (!current || current.endsWith("%")) {
        el.setAttribute(attr, String(size));
      }
    }
  }
  el.style.removeProperty("max-width");
  return new XMLSerializer().serializeToString(el);
}
"""


class RenderError(RuntimeError):
    """Mermaid could not turn a diagram source into SVG."""


@dataclass(frozen=True)
class RenderOptions:
    theme: str = "default"
    font_family: str = "Arial, sans-serif"
    security_level: str = "strict"
    html_labels: bool = False

    def to_mermaid_config(self) -> dict[str, Any]:
        # labels as plain <text>, no foreignObject
        return {
            "startOnLoad": False,
            "theme": self.theme,
            "securityLevel": self.security_level,
            "fontFamily": self.font_family,
            "flowchart": {"htmlLabels": self.html_labels},
            "htmlLabels": self.html_labels,
        }


def diagram_id(path: Path | str) -> str:
    """Unique element id for one render call, derived from the file name."""
    name = re.sub(r"\W+", "_", Path(path).name)
    return f"mmd_{name}_{int(time.time() * 1000)}_{next(_counter)}"


async def _block_request(route: Route) -> None:
    await route.abort()


class MermaidRenderer:
    """Renders Mermaid sources to SVG in throwaway headless pages.

    Each call gets its own page (document and window), so renders never share
    DOM state. Network access from the page is blocked; the Mermaid library is
    injected from ``script`` as inline content.
    """

    def __init__(self, browser: Browser, script: str, options: RenderOptions | None = None):
        self.browser = browser
        self.script = script
        self.options = options or RenderOptions()

    async def render(self, source: str, diagram_id: str) -> str:
        page = await self.browser.new_page()
        try:
            await page.route("**/*", _block_request)
            await page.set_content(_PAGE_HTML)
            await page.add_script_tag(content=self.script)
            svg = await page.evaluate(
                _RENDER_JS,
                {"id": diagram_id, "code": source, "config": self.options.to_mermaid_config()},
            )
        except PlaywrightError as exc:
            raise RenderError(f"Mermaid render failed: {exc.message}") from exc
        finally:
            await page.close()

        if not svg:
            raise RenderError("Mermaid produced empty output")
        return svg


async def load_mermaid_script(pw: Playwright, source: str) -> str:
    """Return the Mermaid bundle text from a local path or an http(s) URL."""
    if source.startswith(("http://", "https://")):
        log.warning("Downloading Mermaid library from %s; set MERMAID_JS to a local mermaid.min.js to run offline", source)
        request = await pw.request.new_context()
        try:
            response = await request.get(source)
            if not response.ok:
                raise RenderError(f"Cannot fetch Mermaid library: HTTP {response.status} from {source}")
            return await response.text()
        finally:
            await request.dispose()
    return Path(source).read_text(encoding="utf-8")


@asynccontextmanager
async def launch_renderer(options: RenderOptions, mermaid_js: str) -> AsyncIterator[MermaidRenderer]:
    """Start headless Chromium and yield a renderer bound to it."""
    async with async_playwright() as pw:
        script = await load_mermaid_script(pw, mermaid_js)
        browser = await pw.chromium.launch(headless=True)
        log.debug("Launched %s %s", browser.browser_type.name, browser.version)
        try:
            yield MermaidRenderer(browser, script, options)
        finally:
            await browser.close()
