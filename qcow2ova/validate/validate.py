"""Preflight validation.

Rules run in registration order. The first failing rule stops validation and
is reported with its name, the cause and its remediation hint. Rules named in
``skip`` are logged and passed over.
"""

from __future__ import annotations

from typing import Iterable, Optional

from qcow2ova.domain import ValidationRule
from qcow2ova.logging import LoggerFactory
from qcow2ova.storage.exceptions import ValidationError


log = LoggerFactory.for_validate()


class Validator:
    def __init__(self, rules: Optional[Iterable[ValidationRule]] = None):
        self.rules: list[ValidationRule] = list(rules or [])

    def validate(self, skip: Iterable[str] = ()) -> None:
        """Run every rule not in ``skip``.

        Raises:
            ValidationError: For the first rule whose check raises
        """
        skip = set(skip)
        for rule in self.rules:
            log.info(f"Checking: {rule.name}")
            if rule.name in skip:
                log.info("SKIPPED!")
                continue
            try:
                rule.check()
            except Exception as error:
                hint = rule.resolve_hint()
                log.error(f"Check {rule.name} failed: {error}")
                raise ValidationError(rule.name, error, hint) from error
