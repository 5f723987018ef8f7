"""Jinja2 rendering for generated sources.

Templates live in ``svcforge/composer/templates/``: the synthesized smoke
test, the TestContainers build fragments and the initial commit message.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


class TemplateRenderer:
    """Renders the packaged ``.j2`` templates.

    Undefined variables raise :class:`jinja2.UndefinedError` instead of
    rendering as empty strings.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self.template_dir = Path(template_dir or _DEFAULT_TEMPLATE_DIR)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render *template_path* (relative to the template directory)."""
        return self.env.get_template(template_path).render(**context)
