"""Jinja2 renderer for daemon configuration files.

Resolves templates with a two-tier loader:
1. Operator-supplied ``templates_path`` (overrides)
2. Built-in templates shipped with the package

Rendering failures are reported as :class:`PublishError` at the
``render`` stage; nothing has been written at that point.
"""

from __future__ import annotations

from typing import Any

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
)

from hostplane.core.errors import PublishError
from hostplane.core.types import PublishStage


class TemplateRenderer:
    """Renders vhost and zone templates."""

    def __init__(self, templates_path: str | None = None) -> None:
        loaders: list[BaseLoader] = []
        if templates_path:
            loaders.append(FileSystemLoader(templates_path))
        loaders.append(PackageLoader("hostplane.drivers", "templates"))

        self._env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template: str, context: dict[str, Any]) -> str:
        """Render *template* (e.g. ``"nginx/vhost.conf.j2"``) with *context*.

        Raises
        ------
        PublishError
            If the template is missing or fails to render.

        """
        try:
            return self._env.get_template(template).render(**context)
        except TemplateError as exc:
            msg = f"Cannot render {template}: {exc}"
            raise PublishError(msg, stage=PublishStage.RENDER) from exc
