"""Per-job resume tailoring: reasoning service -> LaTeX compiler -> object store.

Every failure in here ends as "no link"; the extracted job is still saved.
Only a stop request during the pacing wait escapes, so the batch can end.
"""

from __future__ import annotations

import logging
from pathlib import Path

from job_harvest.compiler import LatexCompiler, validate_latex
from job_harvest.config import Settings
from job_harvest.errors import TransportError
from job_harvest.models import JobRecord
from job_harvest.reasoning import ReasoningClient, strip_code_fence
from job_harvest.signals import ReasoningPacer
from job_harvest.uploader import CloudinaryUploader

logger = logging.getLogger(__name__)

CUSTOMIZATION_PROMPT = """\
You are a professional resume writer. Customize this LaTeX resume template for a specific job application.

JOB DETAILS:
- Company: {company}
- Role: {role}
- Location: {location}
- Salary: {salary}
- Description: {description}

RESUME TEMPLATE TO CUSTOMIZE:
{template}

INSTRUCTIONS:
1. Change only the parts that matter for this role.
2. Do not add so many lines that the resume grows past a single page.
3. Keep the resume ATS-friendly and professional.

Return ONLY the complete, customized LaTeX document. Do not include any explanations or text outside the LaTeX document.
"""


def build_customization_prompt(record: JobRecord, template: str) -> str:
    return CUSTOMIZATION_PROMPT.format(
        company=record.company,
        role=record.role,
        location=record.location or "Remote",
        salary=record.salary or "Competitive",
        description=record.raw_snippet or "Software development position",
        template=template,
    )


class ResumeGenerator:
    def __init__(
        self,
        settings: Settings,
        reasoning: ReasoningClient,
        compiler: LatexCompiler,
        uploader: CloudinaryUploader,
        *,
        template: str | None = None,
    ) -> None:
        self.settings = settings
        self.reasoning = reasoning
        self.compiler = compiler
        self.uploader = uploader
        self.template = template

    @property
    def enabled(self) -> bool:
        return self.settings.resume_generate_enabled and bool(self.template)

    def load_template(self, path: Path | None = None) -> bool:
        source = path or self.settings.resume_template_path
        try:
            self.template = source.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("resume template %s unreadable, generation disabled: %s", source, exc)
            self.template = None
            return False
        logger.info("resume template loaded from %s", source)
        return True

    def customize(self, record: JobRecord) -> str | None:
        prompt = build_customization_prompt(record, self.template or "")
        try:
            latex = strip_code_fence(self.reasoning.generate(prompt), "latex")
        except TransportError as exc:
            logger.error("resume customization failed for %s at %s: %s", record.role, record.company, exc)
            return None
        if not latex:
            logger.error("resume customization returned an empty document")
            return None
        return latex

    def generate(self, record: JobRecord, pacer: ReasoningPacer) -> str | None:
        if not self.settings.resume_generate_enabled:
            logger.debug("resume generation disabled")
            return None
        if not self.template:
            logger.warning("resume generation enabled but no template is loaded")
            return None

        pacer.wait_turn()
        logger.info("generating resume for %s at %s", record.role, record.company)

        latex = self.customize(record)
        if latex is None or not validate_latex(latex):
            return None

        try:
            pdf = self.compiler.compile(latex)
            link = self.uploader.upload_pdf(pdf, record)
        except TransportError as exc:
            logger.error("resume pipeline failed for %s at %s: %s", record.role, record.company, exc)
            return None
        return link

    def status(self) -> dict[str, object]:
        return {
            "generation_enabled": self.settings.resume_generate_enabled,
            "template_loaded": bool(self.template),
            "template_path": str(self.settings.resume_template_path),
            "object_store_configured": self.uploader.is_configured,
        }
