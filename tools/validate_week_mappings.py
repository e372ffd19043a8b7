#!/usr/bin/env python3
"""Validate a week mapping document and optionally publish it to S3.

The Task Bank Lambdas read week-reference → week-number and
week-reference → scorecard-week tables from this document at runtime, so
a new week set can be rolled out without redeploying code:

    tools/validate_week_mappings.py week_mappings.json
    tools/validate_week_mappings.py week_mappings.json \
        --upload-bucket my-config-bucket --upload-key taskbank/week-mappings.json
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

_LAYER_PATH = pathlib.Path(__file__).resolve().parents[1] / "backend" / "lambda" / "shared_layer" / "python"
if str(_LAYER_PATH) not in sys.path:
    sys.path.insert(0, str(_LAYER_PATH))

from taskbank_shared.weeks import MappingError, WeekMappings  # noqa: E402


def _load(path: pathlib.Path) -> WeekMappings:
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise MappingError(f"{path}: {exc}") from exc
    return WeekMappings.from_document(doc, source=str(path))


def _warnings(mappings: WeekMappings) -> list[str]:
    out: list[str] = []
    numbers = sorted(mappings.week_numbers.values())
    missing = sorted(set(range(1, mappings.total_weeks + 1)) - set(numbers))
    if missing:
        out.append(f"no week reference mapped for week(s) {missing}")
    dupes = sorted({n for n in numbers if numbers.count(n) > 1})
    if dupes:
        out.append(f"several week references share week number(s) {dupes}")
    orphans = sorted(set(mappings.scorecard_weeks) - set(mappings.week_numbers))
    if orphans:
        out.append(f"{len(orphans)} scorecard link(s) for unknown week references")
    return out


def _upload(path: pathlib.Path, bucket: str, key: str, region: str) -> None:
    s3 = boto3.client(
        "s3",
        region_name=region,
        config=Config(retries={"max_attempts": 3, "mode": "standard"}),
    )
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=path.read_bytes(),
        ContentType="application/json",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("path", type=pathlib.Path)
    parser.add_argument("--upload-bucket", default="")
    parser.add_argument("--upload-key", default="")
    parser.add_argument("--region", default="us-west-2")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="treat warnings as errors",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        mappings = _load(args.path)
    except MappingError as exc:
        print(f"[ERROR] {exc}")
        return 1

    print(
        f"[OK] {args.path}: start {mappings.program_start_date.isoformat()}, "
        f"{mappings.total_weeks} weeks, {len(mappings.week_numbers)} week references, "
        f"{len(mappings.scorecard_weeks)} scorecard links"
    )
    warnings = _warnings(mappings)
    for warning in warnings:
        print(f"[WARNING] {warning}")
    if warnings and args.strict:
        return 1

    if bool(args.upload_bucket) != bool(args.upload_key):
        print("[ERROR] --upload-bucket and --upload-key must be given together")
        return 2
    if args.upload_bucket:
        try:
            _upload(args.path, args.upload_bucket, args.upload_key, args.region)
        except (ClientError, BotoCoreError) as exc:
            print(f"[ERROR] upload failed: {exc}")
            return 1
        print(f"[OK] uploaded to s3://{args.upload_bucket}/{args.upload_key}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
