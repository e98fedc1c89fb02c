"""Default preflight rule set, in evaluation order."""

from __future__ import annotations

from qcow2ova.config.settings import get_setting
from qcow2ova.domain import ConversionJob
from qcow2ova.validate.rules import diskspace, image_name, platform, tools, user
from qcow2ova.validate.validate import Validator


RULE_NAMES = (user.NAME, platform.NAME, image_name.NAME, tools.NAME, diskspace.NAME)


def default_validator(job: ConversionJob) -> Validator:
    return Validator(
        [
            user.rule(),
            platform.rule(),
            image_name.rule(job),
            tools.rule(with_btrfs=bool(get_setting("require_btrfs", False))),
            diskspace.rule(job),
        ]
    )
