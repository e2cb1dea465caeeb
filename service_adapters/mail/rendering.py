"""Template rendering for mail messages."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Union

from jinja2 import Environment, FileSystemLoader, TemplatesNotFound

LOGGER = logging.getLogger(__name__)

Appearances = Union[str, Sequence[str], None]


class Renderable(Protocol):
    """Object exposing a template name and the parameters to render it with."""

    @property
    def template_name(self) -> Optional[str]:
        ...

    @property
    def template_parameters(self) -> Mapping[str, Any]:
        ...


class Renderer(Protocol):
    """Renders a :class:`Renderable`; returns a falsy value on failure."""

    def render(self, renderable: Renderable, appearances: Appearances = None) -> Optional[str]:
        ...


class JinjaRenderer:
    """Renders templates from a directory with Jinja2.

    Appearances select template variants: for the template ``email/welcome``
    and appearance ``html`` the candidates are ``email/welcome.html.j2`` and
    then ``email/welcome.j2``.
    """

    def __init__(self, template_dir: Union[str, Path], extension: str = ".j2") -> None:
        self.template_dir = Path(template_dir)
        self.extension = extension
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            keep_trailing_newline=True,
        )

    def candidates(self, name: str, appearances: Appearances = None) -> List[str]:
        if isinstance(appearances, str):
            appearances = [appearances]

        names = [f"{name}.{appearance}{self.extension}" for appearance in appearances or ()]
        names.append(f"{name}{self.extension}")
        return names

    def render(self, renderable: Renderable, appearances: Appearances = None) -> Optional[str]:
        name = renderable.template_name
        if not name:
            return None

        names = self.candidates(name, appearances)
        try:
            template = self.env.select_template(names)
        except TemplatesNotFound:
            LOGGER.warning("No template found in %s for %s", self.template_dir, names)
            return None

        LOGGER.debug("Rendering template %s", template.name)
        return template.render(dict(renderable.template_parameters))

