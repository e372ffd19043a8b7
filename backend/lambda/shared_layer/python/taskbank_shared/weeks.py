"""taskbank_shared.weeks — Week mapping configuration and week lookups.

The week mapping document ties opaque Week Reference page ids to week
ordinals and to Scorecard Week page ids, and fixes the program start date
used to derive the current week::

    {
      "program_start_date": "2025-08-04",
      "total_weeks": 12,
      "week_numbers": {"<week-reference-id>": 1, ...},
      "scorecard_weeks": {"<week-reference-id>": "<scorecard-week-id>", ...}
    }

Source precedence (first configured wins):
    WEEK_MAPPINGS_S3_BUCKET + WEEK_MAPPINGS_S3_KEY   S3 object
    WEEK_MAPPINGS_SSM_PARAMETER                      SSM parameter (JSON string)
    WEEK_MAPPINGS_PATH                               local JSON file
    bundled week_mappings.json                       default

Loaded mappings are cached per container for WEEK_MAPPINGS_TTL_SECONDS.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
import pathlib
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from taskbank_shared import aws_clients
from taskbank_shared.schema import WEEK_REFERENCE_PROP, first_relation_id

logger = logging.getLogger(__name__)

WEEK_MAPPINGS_S3_BUCKET: str = os.environ.get("WEEK_MAPPINGS_S3_BUCKET", "")
WEEK_MAPPINGS_S3_KEY: str = os.environ.get("WEEK_MAPPINGS_S3_KEY", "")
WEEK_MAPPINGS_SSM_PARAMETER: str = os.environ.get("WEEK_MAPPINGS_SSM_PARAMETER", "")
DEFAULT_MAPPINGS_PATH = pathlib.Path(__file__).with_name("week_mappings.json")
WEEK_MAPPINGS_PATH: str = os.environ.get("WEEK_MAPPINGS_PATH", "")
WEEK_MAPPINGS_TTL_SECONDS: float = float(os.environ.get("WEEK_MAPPINGS_TTL_SECONDS", "300"))


class MappingError(ValueError):
    """The week mapping document is missing or malformed."""


def _norm_id(page_id: Optional[str]) -> str:
    """Notion ids appear with and without dashes; compare them dash-free."""
    return str(page_id or "").replace("-", "").strip().lower()


def same_page_id(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and _norm_id(a) == _norm_id(b)


@dataclass(frozen=True)
class WeekMappings:
    program_start_date: dt.date
    total_weeks: int
    week_numbers: Dict[str, int] = field(default_factory=dict)
    scorecard_weeks: Dict[str, str] = field(default_factory=dict)
    source: str = "inline"

    @classmethod
    def from_document(cls, doc: Any, source: str = "inline") -> "WeekMappings":
        if not isinstance(doc, dict):
            raise MappingError(f"{source}: mapping document must be a JSON object")

        raw_start = doc.get("program_start_date")
        try:
            start = dt.date.fromisoformat(str(raw_start))
        except (TypeError, ValueError) as exc:
            raise MappingError(
                f"{source}: program_start_date must be YYYY-MM-DD, got {raw_start!r}"
            ) from exc

        total = doc.get("total_weeks", 12)
        if isinstance(total, bool) or not isinstance(total, int) or total < 1:
            raise MappingError(f"{source}: total_weeks must be a positive integer")

        raw_numbers = doc.get("week_numbers") or {}
        raw_scorecards = doc.get("scorecard_weeks") or {}
        if not isinstance(raw_numbers, dict) or not isinstance(raw_scorecards, dict):
            raise MappingError(f"{source}: week_numbers and scorecard_weeks must be objects")

        week_numbers: Dict[str, int] = {}
        for ref_id, number in raw_numbers.items():
            if isinstance(number, bool) or not isinstance(number, int) or not 1 <= number <= total:
                raise MappingError(
                    f"{source}: week number for {ref_id} must be between 1 and {total}"
                )
            week_numbers[_norm_id(ref_id)] = number

        scorecard_weeks: Dict[str, str] = {}
        for ref_id, scorecard_id in raw_scorecards.items():
            if not isinstance(scorecard_id, str) or not scorecard_id.strip():
                raise MappingError(f"{source}: scorecard week for {ref_id} must be a page id")
            scorecard_weeks[_norm_id(ref_id)] = scorecard_id.strip()

        return cls(
            program_start_date=start,
            total_weeks=total,
            week_numbers=week_numbers,
            scorecard_weeks=scorecard_weeks,
            source=source,
        )

    def week_number(self, week_ref_id: Optional[str]) -> Optional[int]:
        if not week_ref_id:
            return None
        return self.week_numbers.get(_norm_id(week_ref_id))

    def scorecard_week(self, week_ref_id: Optional[str]) -> Optional[str]:
        if not week_ref_id:
            return None
        return self.scorecard_weeks.get(_norm_id(week_ref_id))


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_mappings_cache: Optional[WeekMappings] = None
_mappings_fetched_at: float = 0.0


def _read_s3(bucket: str, key: str) -> Any:
    try:
        resp = aws_clients._get_s3().get_object(Bucket=bucket, Key=key)
        return json.loads(resp["Body"].read().decode("utf-8"))
    except (ClientError, BotoCoreError) as exc:
        raise MappingError(f"s3://{bucket}/{key}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise MappingError(f"s3://{bucket}/{key}: invalid JSON: {exc}") from exc


def _read_ssm(name: str) -> Any:
    try:
        resp = aws_clients._get_ssm().get_parameter(Name=name, WithDecryption=True)
        return json.loads(resp["Parameter"]["Value"])
    except (ClientError, BotoCoreError) as exc:
        raise MappingError(f"ssm:{name}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise MappingError(f"ssm:{name}: invalid JSON: {exc}") from exc


def _read_file(path: pathlib.Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise MappingError(f"{path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise MappingError(f"{path}: invalid JSON: {exc}") from exc


def _load_from_sources() -> WeekMappings:
    if WEEK_MAPPINGS_S3_BUCKET and WEEK_MAPPINGS_S3_KEY:
        source = f"s3://{WEEK_MAPPINGS_S3_BUCKET}/{WEEK_MAPPINGS_S3_KEY}"
        doc = _read_s3(WEEK_MAPPINGS_S3_BUCKET, WEEK_MAPPINGS_S3_KEY)
    elif WEEK_MAPPINGS_SSM_PARAMETER:
        source = f"ssm:{WEEK_MAPPINGS_SSM_PARAMETER}"
        doc = _read_ssm(WEEK_MAPPINGS_SSM_PARAMETER)
    else:
        path = pathlib.Path(WEEK_MAPPINGS_PATH) if WEEK_MAPPINGS_PATH else DEFAULT_MAPPINGS_PATH
        source = str(path)
        doc = _read_file(path)
    mappings = WeekMappings.from_document(doc, source=source)
    logger.info(
        "Loaded week mappings from %s (%d weeks, %d scorecard links)",
        source, len(mappings.week_numbers), len(mappings.scorecard_weeks),
    )
    return mappings


def load_week_mappings(force: bool = False) -> WeekMappings:
    """Return the (cached) week mappings, reloading after the TTL expires."""
    global _mappings_cache, _mappings_fetched_at
    now = time.time()
    if (
        not force
        and _mappings_cache is not None
        and (now - _mappings_fetched_at) < WEEK_MAPPINGS_TTL_SECONDS
    ):
        return _mappings_cache

    _mappings_cache = _load_from_sources()
    _mappings_fetched_at = now
    return _mappings_cache


def _reset_cache() -> None:
    global _mappings_cache, _mappings_fetched_at
    _mappings_cache = None
    _mappings_fetched_at = 0.0


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def week_number_for(page: Optional[Dict[str, Any]], mappings: WeekMappings) -> Optional[int]:
    """Week ordinal for a page's Week Reference relation, or None."""
    return mappings.week_number(first_relation_id(page, WEEK_REFERENCE_PROP))


def scorecard_week_for(week_ref_id: Optional[str], mappings: WeekMappings) -> Optional[str]:
    return mappings.scorecard_week(week_ref_id)


def current_week_number(
    mappings: WeekMappings, today: Optional[dt.date] = None
) -> Optional[int]:
    """1-based week of the program containing *today*, or None outside it."""
    today = today or dt.datetime.now(dt.timezone.utc).date()
    elapsed = (today - mappings.program_start_date).days
    if elapsed < 0:
        return None
    week = elapsed // 7 + 1
    return week if week <= mappings.total_weeks else None
