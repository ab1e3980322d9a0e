from __future__ import annotations

import html
from pathlib import Path
from typing import Callable

from .settings import Settings

APP_PLACEHOLDER = "<!--app-html-->"

DEFAULT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>HRS</title>
  </head>
  <body>
    <div id="root"><!--app-html--></div>
  </body>
</html>
"""

RenderFn = Callable[[str], str]


def default_render(url: str) -> str:
    """Server-side markup for ``url`` used when no app bundle is plugged in."""
    return f'<main data-route="{html.escape(url, quote=True)}"><h1>HRS</h1><p>{html.escape(url)}</p></main>'


class PageRenderer:
    """Fills the HTML template's app placeholder with server-rendered markup.

    Development reads ``index.html`` from the project root on every request;
    production reads the built ``dist/client/index.html``. The bundled
    default template is used when neither exists.
    """

    def __init__(self, settings: Settings, root: str | Path = ".", render: RenderFn | None = None) -> None:
        self.root = Path(root)
        self.production = settings.is_production
        self.render_fn = render or default_render

    @property
    def template_path(self) -> Path:
        if self.production:
            return self.root / "dist" / "client" / "index.html"
        return self.root / "index.html"

    @property
    def assets_dir(self) -> Path:
        return self.root / "dist" / "client" / "assets"

    def template(self) -> str:
        path = self.template_path
        if path.is_file():
            return path.read_text(encoding="utf-8")
        return DEFAULT_TEMPLATE

    def render(self, url: str) -> str:
        return self.template().replace(APP_PLACEHOLDER, self.render_fn(url))
