"""Command line entry point.

Examples:

  # Download a coreos image and convert it into rhcos-461.ova.gz
  qcow2ova --image-name rhcos-461 --image-dist coreos \\
      --image-url https://example.com/rhcos-4.6.1-ppc64le-openstack.ppc64le.qcow2.gz

  # Convert a local CentOS image into a 50G disk
  qcow2ova --image-name centos-82 --image-dist centos --image-size 50 \\
      --image-url /root/CentOS-8-GenericCloud-8.2.2004-20200611.2.ppc64le.qcow2

  # Customize the preparation script
  qcow2ova --prep-template-default > image-prep.template
  qcow2ova --image-name centos-82 --image-dist centos \\
      --image-url /root/CentOS-8.qcow2 --prep-template image-prep.template
"""

from __future__ import annotations

import argparse
import getpass
import signal
import sys
from pathlib import Path

from qcow2ova.__version__ import __version__
from qcow2ova.config.settings import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_IMAGE_SIZE_GIB,
    DEFAULT_TARGET_DISK_SIZE_GIB,
    DEFAULT_WRITE_TO_DIR,
    get_int,
    get_setting,
)
from qcow2ova.domain import ConversionJob, Distro
from qcow2ova.logging import LoggerFactory, setup_logging
from qcow2ova.prep.password import generate_password
from qcow2ova.prep.templates import SETUP_TEMPLATE
from qcow2ova.services.conversion import ConversionPipeline
from qcow2ova.storage.exceptions import (
    PipelineStepError,
    Qcow2OvaError,
    UnsupportedDistroError,
    ValidationError,
)
from qcow2ova.validate.register import RULE_NAMES


EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130
EXIT_TERMINATED = 143


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qcow2ova",
        description="Convert a qcow2 image into an OVA bundle",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--image-name", help="Name of the resultant OVA image")
    parser.add_argument("--image-url", help="URL or local file path of the qcow2 (or qcow2.gz) image")
    parser.add_argument(
        "--image-dist",
        default="",
        help="Image distribution (supported: rhel, centos, coreos)",
    )
    parser.add_argument(
        "--image-size",
        type=int,
        default=get_int("image_size_gib", DEFAULT_IMAGE_SIZE_GIB),
        help="Size (in GB) of the resultant OVA image",
    )
    parser.add_argument(
        "--target-disk-size",
        type=int,
        default=get_int("target_disk_size_gib", DEFAULT_TARGET_DISK_SIZE_GIB),
        help="Size (in GB) of the target disk volume where the OVA will be copied",
    )
    parser.add_argument("--rhn-user", default="", help="RedHat subscription username, required for rhel")
    parser.add_argument("--rhn-password", default="", help="RedHat subscription password, required for rhel")
    parser.add_argument("--os-password", default="", help="Root user password, generated when omitted")
    parser.add_argument("--skip-os-password", action="store_true", help="Do not set a root password")
    parser.add_argument(
        "-t",
        "--temp-dir",
        default=get_setting("temp_dir"),
        help="Scratch space to use for OVA generation",
    )
    parser.add_argument("--prep-template", help="Image preparation script template (rhel and centos)")
    parser.add_argument(
        "--prep-template-default",
        action="store_true",
        help="Print the default image preparation template and exit",
    )
    parser.add_argument(
        "--skip-preflight-checks",
        default="",
        help=argparse.SUPPRESS,
    )
    parser.add_argument("--image-sha256", help="Expected sha256 of the source image")
    parser.add_argument(
        "--write-files",
        action="append",
        default=[],
        help="Host file or directory to copy into the image (repeatable)",
    )
    parser.add_argument(
        "--write-to-dir",
        default=get_setting("write_to_dir", DEFAULT_WRITE_TO_DIR),
        help="Directory inside the image that receives --write-files",
    )
    parser.add_argument("--output-dir", default=".", help="Where to write <image-name>.ova.gz")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log every command and its output")
    return parser


def _prompt(label: str, secret: bool = False) -> str:
    while True:
        value = getpass.getpass(f"{label}: ") if secret else input(f"{label}: ")
        if value.strip():
            return value
        print("input can't be empty string", file=sys.stderr)


def build_job(args: argparse.Namespace) -> ConversionJob:
    """Turn parsed options into a ConversionJob, prompting where needed.

    Raises:
        UnsupportedDistroError: For an unknown --image-dist
        Qcow2OvaError: For option combinations that cannot work
    """
    log = LoggerFactory.for_system()
    try:
        distro = Distro.from_name(args.image_dist)
    except ValueError:
        raise UnsupportedDistroError(args.image_dist) from None

    prep_template = None
    if args.prep_template:
        if not distro.requires_customization:
            raise Qcow2OvaError(
                f"--prep-template option is not supported for {distro.value} distro"
            )
        log.info("Overriding with the user defined image preparation template")
        prep_template = Path(args.prep_template).read_text(encoding="utf-8")

    rhn_user, rhn_password = args.rhn_user, args.rhn_password
    if distro is Distro.RHEL and not (rhn_user and rhn_password):
        log.warning(
            "rhn-user and rhn-password are mandatory when image-dist is rhel, "
            "please enter the details"
        )
        rhn_user = rhn_user or _prompt("Enter the RHN Username")
        rhn_password = rhn_password or _prompt("Enter the RHN Password", secret=True)

    root_password = args.os_password or None
    if distro.requires_customization and not root_password and not args.skip_os_password:
        root_password = generate_password()
        log.info("Generated a root password, it is printed when the conversion completes")

    skip = tuple(name.strip() for name in args.skip_preflight_checks.split(",") if name.strip())
    unknown = [name for name in skip if name not in RULE_NAMES]
    if unknown:
        log.warning(
            f"Ignoring unknown preflight checks: {', '.join(unknown)}, "
            f"known checks: {', '.join(RULE_NAMES)}"
        )

    return ConversionJob(
        image_name=args.image_name,
        source=args.image_url,
        distro=distro,
        image_size_gib=args.image_size,
        target_disk_size_gib=args.target_disk_size,
        temp_dir=Path(args.temp_dir).resolve(),
        output_dir=Path(args.output_dir).resolve(),
        rhn_user=rhn_user or None,
        rhn_password=rhn_password or None,
        root_password=root_password,
        skip_checks=skip,
        expected_sha256=args.image_sha256,
        write_files=tuple(Path(p) for p in args.write_files),
        write_to_dir=args.write_to_dir,
        prep_template=prep_template,
        fetch_timeout=get_int("fetch_timeout_seconds", DEFAULT_FETCH_TIMEOUT_SECONDS),
    )


def _raise_on_sigterm(signum, frame):
    raise SystemExit(EXIT_TERMINATED)


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.prep_template_default:
        print(SETUP_TEMPLATE)
        return 0
    if not args.image_name or not args.image_url:
        parser.error("--image-name and --image-url are required")

    setup_logging(debug=args.debug, trace=args.trace)
    log = LoggerFactory.for_system()
    signal.signal(signal.SIGTERM, _raise_on_sigterm)

    try:
        job = build_job(args)
        output = ConversionPipeline(job).run()
    except KeyboardInterrupt:
        log.warning("Received an interrupt, exiting...")
        return EXIT_INTERRUPTED
    except PipelineStepError as error:
        cause = error.error
        if isinstance(cause, ValidationError):
            log.error(f"Preflight check {cause.rule_name} failed: {cause.cause}")
            if cause.hint:
                log.error(f"Hint: {cause.hint}")
        else:
            log.error(f"Step {error.step} failed: {cause}")
        return EXIT_FAILURE
    except (Qcow2OvaError, OSError) as error:
        log.error(str(error))
        return EXIT_FAILURE

    print(f"\n\nSuccessfully converted Qcow2 image to OVA format, find at {output}")
    if job.root_password:
        print(f"OS root password: {job.root_password}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
