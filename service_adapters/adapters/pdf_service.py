"""PDF rendering service backed by wkhtmltopdf."""
from __future__ import annotations

import logging
import os
import re
import shlex
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pdfkit

from service_adapters.config import as_bool

from .base import BaseService

LOGGER = logging.getLogger(__name__)

HTML_PATTERN = re.compile(r"<html", re.IGNORECASE)

DEFAULT_XVFB_RUN_BINARY = "xvfb-run"
DEFAULT_XVFB_RUN_OPTIONS = '-a --server-args="-screen 0, 1024x768x24"'

# Option keys consumed by PdfDocument itself rather than passed to wkhtmltopdf.
DOCUMENT_KEYS = frozenset({"binary", "commandOptions", "ignoreWarnings"})


class _XvfbPDFKit(pdfkit.PDFKit):
    """pdfkit runner that starts wkhtmltopdf inside a virtual X server."""

    def __init__(self, *args: Any, xvfb_command: Sequence[str] = (), **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.xvfb_command = list(xvfb_command)

    def command(self, path=None):
        return self.xvfb_command + super().command(path)


class PdfDocument:
    """A PDF document assembled from pages and rendered on demand.

    Nothing is executed until :meth:`save` or :meth:`to_bytes` is called::

        pdf = ServiceFactory.create("pdf")
        pdf.add_page("https://www.example.com")
        pdf.save("example.pdf")
    """

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        self.options: Dict[str, Any] = dict(options or {})
        self.pages: List[str] = []
        self.cover: Optional[str] = None

    @property
    def binary(self) -> Optional[str]:
        return self.options.get("binary") or None

    @property
    def command_options(self) -> Dict[str, Any]:
        return dict(self.options.get("commandOptions") or {})

    @property
    def ignore_warnings(self) -> bool:
        return as_bool(self.options.get("ignoreWarnings", False))

    def add_page(self, source: str) -> "PdfDocument":
        """Append a URL, file path or HTML string as a page."""

        self.pages.append(source)
        return self

    def add_cover(self, source: str) -> "PdfDocument":
        self.cover = source
        return self

    def wkhtmltopdf_options(self) -> Dict[str, Optional[str]]:
        """Global wkhtmltopdf options in the form pdfkit expects."""

        options: Dict[str, Optional[str]] = {}
        for key, value in self.options.items():
            if key in DOCUMENT_KEYS or value is None or value is False:
                continue
            options[key] = None if value is True else str(value)
        return options

    def xvfb_command(self) -> List[str]:
        command_options = self.command_options
        if not as_bool(command_options.get("enableXvfb", False)):
            return []

        binary = command_options.get("xvfbRunBinary") or DEFAULT_XVFB_RUN_BINARY
        run_options = command_options.get("xvfbRunOptions", DEFAULT_XVFB_RUN_OPTIONS)
        return [binary, *shlex.split(run_options or "")]

    def save(self, path: os.PathLike | str) -> Path:
        """Render the document into ``path``."""

        if not self.pages:
            raise ValueError("Cannot render a PDF document without pages")

        target = Path(path)
        temporary: List[str] = []
        try:
            sources = [self._materialize(page, temporary) for page in self.pages]
            cover = self._materialize(self.cover, temporary) if self.cover else None
            options = self.wkhtmltopdf_options()
            if temporary:
                options.setdefault("enable-local-file-access", None)

            runner = self._runner(sources, options, cover)
            LOGGER.debug("Rendering %d page(s) to %s", len(sources), target)
            try:
                runner.to_pdf(str(target))
            except OSError:
                if not (self.ignore_warnings and target.exists() and target.stat().st_size):
                    raise
                LOGGER.warning("wkhtmltopdf reported problems, keeping output %s", target)
        finally:
            for name in temporary:
                os.unlink(name)

        return target

    def to_bytes(self) -> bytes:
        """Render the document and return the PDF content."""

        handle, name = tempfile.mkstemp(suffix=".pdf")
        os.close(handle)
        try:
            return self.save(name).read_bytes()
        finally:
            os.unlink(name)

    def _runner(
        self, sources: List[str], options: Dict[str, Optional[str]], cover: Optional[str]
    ) -> pdfkit.PDFKit:
        configuration = (
            pdfkit.configuration(wkhtmltopdf=self.binary)
            if self.binary
            else pdfkit.configuration()
        )
        return _XvfbPDFKit(
            sources,
            "url",
            options=options,
            cover=cover,
            configuration=configuration,
            xvfb_command=self.xvfb_command(),
        )

    @staticmethod
    def _materialize(source: str, temporary: List[str]) -> str:
        if not HTML_PATTERN.search(source):
            return source

        with tempfile.NamedTemporaryFile(
            "w", suffix=".html", encoding="utf-8", delete=False
        ) as handle:
            handle.write(source)
        temporary.append(handle.name)
        return handle.name


class WkhtmltopdfService(BaseService):
    """Creates :class:`PdfDocument` objects configured from the ``[pdf]`` section.

    ``enableXvfb`` may be given at the top level of the section; it is moved
    into ``commandOptions`` where the document looks for it::

        [pdf]
        binary     = wkhtmltopdf-amd64
        enableXvfb = true
    """

    name = "wkhtmltopdf"
    required_module = "pdfkit"

    @staticmethod
    def build_options(config: Mapping[str, Any]) -> Dict[str, Any]:
        options = {key: value for key, value in config.items() if key != "enableXvfb"}

        if "enableXvfb" in config:
            options["commandOptions"] = {
                **(options.get("commandOptions") or {}),
                "enableXvfb": as_bool(config["enableXvfb"]),
            }

        return options

    def build(self, config: Mapping[str, Any]) -> PdfDocument:
        return PdfDocument(self.build_options(config))
