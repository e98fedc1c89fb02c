"""End-to-end qcow2 to OVA conversion.

Steps, in order; the first failure aborts the job:

    preflight  -> run the validator (nothing has been written yet)
    acquire    -> copy or download the source into a fresh work dir
    gunzip     -> only when the source is gzip framed
    convert    -> qemu-img qcow2 -> raw
    resize     -> grow the raw image to image_size_gib
    prepare    -> guest customization (skipped for coreos)
    package    -> tar the descriptor, metadata and raw disk
    compress   -> gzip next to the requested output, then rename into place

The work dir is removed when the job ends, whatever the outcome.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional, TypeVar

from qcow2ova.domain import ConversionJob
from qcow2ova.image import acquire, compression, qemu_img
from qcow2ova.logging import LoggerFactory, operation_context
from qcow2ova.ova import ova
from qcow2ova.prep.chroot import ChrootRegistry
from qcow2ova.prep.prepare import GuestCustomizer
from qcow2ova.storage.command_runner import CommandRunner, default_runner
from qcow2ova.storage.exceptions import PipelineStepError
from qcow2ova.validate.register import default_validator
from qcow2ova.validate.validate import Validator


T = TypeVar("T")

OVA_IMG_DIR = "ova-img-dir"
MOUNT_DIR = "mnt"


class ConversionPipeline:
    """Runs one ConversionJob to completion or to its first failure."""

    def __init__(
        self,
        job: ConversionJob,
        runner: Optional[CommandRunner] = None,
        validator: Optional[Validator] = None,
        chroot_registry: Optional[ChrootRegistry] = None,
    ):
        self.job = job
        self.runner = runner or default_runner
        self.validator = validator or default_validator(job)
        self.customizer = GuestCustomizer(self.runner, chroot_registry=chroot_registry)
        self.log = LoggerFactory.for_system()
        self.work_dir: Optional[Path] = None
        self.output: Optional[Path] = None

    def _step(self, name: str, func: Callable[..., T], *args, **kwargs) -> T:
        self.log.info(f"Step: {name}")
        try:
            return func(*args, **kwargs)
        except PipelineStepError:
            raise
        except Exception as error:
            raise PipelineStepError(name, error) from error

    def run(self) -> Path:
        """Convert the job's source and return the path of the .ova.gz file.

        Raises:
            PipelineStepError: Naming the failed step and wrapping its error
        """
        job = self.job
        with operation_context("qcow2ova", image=job.image_name, distro=job.distro.value) as log:
            self.log = log
            self._step("preflight", self.validator.validate, skip=job.skip_checks)

            # leaving the chroot resets the cwd to /
            self.output = job.output_path.resolve()
            self.work_dir = Path(
                tempfile.mkdtemp(prefix="qcow2ova", dir=job.temp_dir)
            ).resolve()
            try:
                return self._convert(self.work_dir)
            finally:
                self._cleanup()

    def _convert(self, work_dir: Path) -> Path:
        job = self.job
        mnt = work_dir / MOUNT_DIR
        ova_dir = work_dir / OVA_IMG_DIR
        mnt.mkdir(mode=0o755)
        ova_dir.mkdir(mode=0o755)

        image = self._step(
            "acquire",
            acquire.acquire,
            work_dir,
            job.source,
            timeout=job.fetch_timeout,
            expected_sha256=job.expected_sha256,
        )
        self.log.info(f"Downloaded/copied the file at: {image}")

        if self._step("gunzip", compression.is_gzip, image):
            qcow2 = work_dir / f"{ova.VOL_NAME}.qcow2"
            self._step("gunzip", compression.gunzip_file, image, qcow2)
        else:
            qcow2 = image

        raw = ova_dir / ova.VOL_NAME_RAW
        self._step("convert", qemu_img.convert_to_raw, qcow2, raw, runner=self.runner)
        self._step("resize", qemu_img.resize, raw, job.image_size_gib, runner=self.runner)
        self._step("prepare", self.customizer.prepare, job, mnt, raw)

        ova_file = work_dir / job.ova_name
        self._step(
            "package",
            ova.create_tar_archive,
            ova_dir,
            ova_file,
            job.target_disk_size_gib,
            job.distro,
        )
        return self._step("compress", self._publish, ova_file)

    def _publish(self, ova_file: Path) -> Path:
        """Compress ``ova_file`` into the output dir under its final name."""
        output = self.output or self.job.output_path.resolve()
        output.parent.mkdir(parents=True, exist_ok=True)
        partial = output.with_name(f".{output.name}.partial")
        try:
            compression.gzip_file(ova_file, partial)
            os.replace(partial, output)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        self.log.info(f"OVA file compression completed: {output}")
        return output

    def _cleanup(self) -> None:
        if self.work_dir is None:
            return
        if self.customizer.mounts:
            # rmtree would descend into whatever is still mounted
            self.log.error(
                f"Leaving {self.work_dir} in place, still mounted: "
                f"{', '.join(str(m.target) for m in self.customizer.mounts)}"
            )
            return
        shutil.rmtree(self.work_dir, ignore_errors=True)
        self.log.debug(f"Removed {self.work_dir}")
