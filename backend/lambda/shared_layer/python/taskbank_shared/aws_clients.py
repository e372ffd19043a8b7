"""taskbank_shared.aws_clients — Lazy-singleton AWS service clients.

The week mapping document can live in S3 or SSM Parameter Store. Clients are
created on first use and reused across warm invocations.
"""

from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.config import Config

AWS_REGION_NAME: str = os.environ.get(
    "AWS_REGION_NAME", os.environ.get("AWS_REGION", "us-west-2")
)

_s3 = None
_ssm = None


def _get_s3(region: Optional[str] = None):
    """Get (or create) the S3 client singleton."""
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=region or AWS_REGION_NAME,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _s3


def _get_ssm(region: Optional[str] = None):
    """Get (or create) the SSM client singleton."""
    global _ssm
    if _ssm is None:
        _ssm = boto3.client(
            "ssm",
            region_name=region or AWS_REGION_NAME,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _ssm
