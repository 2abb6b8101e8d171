"""Provisioner CLI."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from .errors import ProvisionError, reason_code
from .logging_utils import configure_logging, parse_level
from .manifest import load_manifest
from .models import sanitized_name
from .template import synthesize_template
from .workflow import provision

logger = logging.getLogger("stack_provisioner.cli")

PLACEHOLDER_ACCOUNT = "000000000000"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    base = argparse.ArgumentParser(add_help=False)
    base.add_argument("--manifest", required=True, help="Path to service manifest YAML")
    base.add_argument("--level", default="info", help="Log level (debug, info, warn, error)")
    base.add_argument("--log-file", action="append", help="Additional log file path")
    base.add_argument("--trace-sdk", action="store_true", help="Log boto3/botocore wire activity")

    parser = argparse.ArgumentParser(description="Serverless stack provisioner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    provision_parser = subparsers.add_parser("provision", parents=[base], help="Build, upload and converge the stack")
    provision_parser.add_argument("--bucket", default=None, help="S3 bucket for the archive and template")

    subparsers.add_parser("describe", parents=[base], help="Print the synthesized template without AWS calls")
    return parser.parse_args(argv)


def _describe(manifest_path: Path) -> str:
    manifest = load_manifest(manifest_path)
    config = manifest.provision_config()
    functions = manifest.declarations(config)
    identities = {
        function.role_name: f"arn:aws:iam::{PLACEHOLDER_ACCOUNT}:role/{function.role_name}" for function in functions
    }
    template = synthesize_template(
        manifest.description,
        functions,
        identities,
        manifest.bucket or "<bucket>",
        f"{sanitized_name(manifest.service)}.zip",
    )
    return json.dumps(template, sort_keys=True, indent=2)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        level = parse_level(args.level)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    configure_logging(level=level, log_paths=args.log_file, trace_sdk=args.trace_sdk)

    try:
        if args.command == "describe":
            print(_describe(Path(args.manifest)))
            return
        manifest = load_manifest(Path(args.manifest))
        bucket = args.bucket or manifest.bucket
        if not bucket:
            raise SystemExit("Provide --bucket or set bucket in the manifest")
        config = manifest.provision_config()
        result = provision(
            manifest.service,
            manifest.description,
            manifest.declarations(config),
            bucket,
            config=config,
        )
    except ProvisionError as exc:
        logger.error("%s", exc)
        raise SystemExit(f"FAILED={reason_code(exc)}") from exc
    print(f"PROVISIONED={result.stack_id} STATUS={result.status} OPERATION={result.operation}")


if __name__ == "__main__":
    main()
