"""Refuse to overwrite an existing output artifact."""

from __future__ import annotations

from qcow2ova.domain import ConversionJob, ValidationRule


NAME = "image-name"
HINT = "Please choose a different image-name and retry"


def rule(job: ConversionJob) -> ValidationRule:
    def check() -> None:
        if job.output_path.exists():
            raise FileExistsError(f"file already exist with name: {job.output_path}")

    return ValidationRule(NAME, check, HINT)
