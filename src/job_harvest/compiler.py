from __future__ import annotations

import logging

import httpx

from job_harvest.config import Settings
from job_harvest.errors import DocumentCompileError

logger = logging.getLogger(__name__)

REQUIRED_MARKERS = ("\\documentclass", "\\begin{document}", "\\end{document}")
PROBE_DOCUMENT = "\\documentclass{article}\\begin{document}Test\\end{document}"


def missing_markers(latex: str) -> list[str]:
    return [marker for marker in REQUIRED_MARKERS if marker not in latex]


def validate_latex(latex: str | None) -> bool:
    if not latex or not latex.strip():
        return False
    missing = missing_markers(latex)
    if missing:
        logger.warning("LaTeX validation failed, missing: %s", ", ".join(missing))
        return False
    return True


def is_pdf(payload: bytes | None) -> bool:
    return bool(payload) and payload[:4] == b"%PDF"


class LatexCompiler:
    def __init__(self, settings: Settings, *, client: httpx.Client | None = None) -> None:
        self.service_url = settings.latex_service_url
        self._client = client or httpx.Client(timeout=max(settings.request_timeout_seconds, 20.0))

    def compile(self, latex: str) -> bytes:
        if not latex or not latex.strip():
            raise DocumentCompileError("LaTeX content is empty")

        body = {
            "compiler": "pdflatex",
            "resources": [{"main": True, "content": latex}],
        }
        logger.info("compiling LaTeX document (%d chars)", len(latex))
        try:
            response = self._client.post(self.service_url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DocumentCompileError(
                f"compile service answered HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DocumentCompileError(f"compile service unreachable: {exc}") from exc

        pdf = response.content
        if not is_pdf(pdf):
            logger.debug("compile response preview: %r", pdf[:100])
            raise DocumentCompileError("compile service did not return a PDF")
        logger.info("LaTeX compilation produced %d bytes", len(pdf))
        return pdf

    def is_available(self) -> bool:
        try:
            return bool(self.compile(PROBE_DOCUMENT))
        except DocumentCompileError as exc:
            logger.warning("LaTeX compile service unavailable: %s", exc)
            return False
