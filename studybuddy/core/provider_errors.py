"""Recognition of quota and rate-limit errors raised by AI providers."""

import math
import re
from dataclasses import dataclass
from typing import Any

QUOTA_MARKERS = (
    "429",
    "quota",
    "rate limit",
    "too many requests",
    "quotafailure",
)

_RETRY_RE = re.compile(r"retry in (\d+(?:\.\d+)?)s", re.IGNORECASE)
_METRIC_RE = re.compile(r"quotaMetric[\":\s]+([^\"\s,}]+)", re.IGNORECASE)
_LIMIT_RE = re.compile(r"quotaValue[\":\s]+(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class ProviderQuotaError:
    """Details parsed from a provider's quota error."""

    message: str
    retry_after_seconds: int | None = None
    quota_metric: str | None = None
    quota_limit: int | None = None

    def as_metadata(self) -> dict[str, Any]:
        return {
            "retry_after_seconds": self.retry_after_seconds,
            "quota_metric": self.quota_metric,
            "quota_limit": self.quota_limit,
        }


def _status_code(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_provider_quota_error(exc: BaseException) -> bool:
    """True for 429s and errors whose message talks about quota or rate limits."""
    if _status_code(exc) == 429:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in QUOTA_MARKERS)


def parse_provider_quota_error(exc: BaseException) -> ProviderQuotaError | None:
    """Parse a provider quota error, or return None for any other error.

    Gemini reports the delay as ``Please retry in 13.2s``; it is rounded up.
    A ``Retry-After`` header on the error's response is used when present.
    """
    if not is_provider_quota_error(exc):
        return None

    message = str(exc)
    retry_after: int | None = None
    match = _RETRY_RE.search(message)
    if match:
        retry_after = math.ceil(float(match.group(1)))
    else:
        headers = getattr(getattr(exc, "response", None), "headers", None) or {}
        header = headers.get("retry-after") or headers.get("Retry-After")
        if header and str(header).isdigit():
            retry_after = int(header)

    metric = _METRIC_RE.search(message)
    limit = _LIMIT_RE.search(message)

    return ProviderQuotaError(
        message=message,
        retry_after_seconds=retry_after,
        quota_metric=metric.group(1) if metric else None,
        quota_limit=int(limit.group(1)) if limit else None,
    )
