"""Quota-guarded execution of outbound AI calls."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from studybuddy.config import get_settings
from studybuddy.core.errors import UpstreamFailure
from studybuddy.core.provider_errors import parse_provider_quota_error
from studybuddy.models.request_log import RequestStatus, RequestType
from studybuddy.schemas.quota import AdmissionDecision, UsageOutcome
from studybuddy.services.pause import PauseService, pause_service
from studybuddy.services.quota import QuotaService, quota_service

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AICallResult(Generic[T]):
    """What an AI call returns to the guard."""

    value: T
    tokens_used: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class GuardedCallResult(Generic[T]):
    """Admission decision plus the call result when admitted."""

    decision: AdmissionDecision
    value: T | None = None

    @property
    def admitted(self) -> bool:
        return self.decision.allowed


async def run_guarded_call(
    db: AsyncSession,
    *,
    user_id: UUID,
    provider: str,
    endpoint: str,
    call: Callable[[], Awaitable[AICallResult[T]]],
    request_type: RequestType = RequestType.OTHER,
    content_id: UUID | None = None,
    timeout: float | None = None,
    quota: QuotaService | None = None,
    pauses: PauseService | None = None,
) -> GuardedCallResult[T]:
    """Run an AI call behind quota admission.

    Denied calls are logged as ``quota_exceeded`` and, when tied to a content
    item, pause it. Admitted calls run under a timeout; failures and timeouts
    are logged as ``failure`` and re-raised as ``UpstreamFailure``. A quota
    error from the provider itself is logged as ``provider_quota`` with its
    retry-after and pauses the content like a local denial.
    """
    quota = quota or quota_service
    pauses = pauses or pause_service

    decision = await quota.reserve_request(db, user_id, provider)
    if not decision.allowed:
        await quota.record_usage(
            db,
            user_id,
            provider,
            UsageOutcome(
                status=RequestStatus.QUOTA_EXCEEDED,
                endpoint=endpoint,
                request_type=request_type,
                content_id=content_id,
                error_code="quota_exceeded",
                error_message=decision.reason,
            ),
        )
        if content_id is not None:
            await pauses.mark_paused(
                db, user_id, content_id, reason=decision.reason or "Quota exceeded"
            )
        return GuardedCallResult(decision=decision)

    started = time.monotonic()
    try:
        result = await asyncio.wait_for(call(), timeout or settings.ai_call_timeout_seconds)
    except asyncio.TimeoutError as e:
        await _record_failure(
            db, quota, user_id, provider, endpoint, request_type, content_id,
            started, error_code="timeout", error_message="AI call timed out",
        )
        raise UpstreamFailure(f"{provider} call timed out", error_code="timeout") from e
    except Exception as e:
        quota_error = parse_provider_quota_error(e)
        if quota_error is not None:
            await _record_failure(
                db, quota, user_id, provider, endpoint, request_type, content_id,
                started, error_code="provider_quota", error_message=quota_error.message,
                metadata=quota_error.as_metadata(),
            )
            if content_id is not None:
                await pauses.mark_paused(
                    db,
                    user_id,
                    content_id,
                    reason=f"{provider} quota exceeded: {quota_error.message}",
                )
            raise UpstreamFailure(
                f"{provider} quota exceeded",
                error_code="provider_quota",
                retry_after_seconds=quota_error.retry_after_seconds,
            ) from e

        await _record_failure(
            db, quota, user_id, provider, endpoint, request_type, content_id,
            started, error_code=type(e).__name__, error_message=str(e),
        )
        raise UpstreamFailure(f"{provider} call failed: {e}", error_code=type(e).__name__) from e

    await quota.record_usage(
        db,
        user_id,
        provider,
        UsageOutcome(
            status=RequestStatus.SUCCESS,
            endpoint=endpoint,
            request_type=request_type,
            content_id=content_id,
            tokens_used=result.tokens_used,
            duration_ms=_elapsed_ms(started),
            metadata=result.metadata,
        ),
        slot_reserved=True,
    )
    return GuardedCallResult(decision=decision, value=result.value)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _record_failure(
    db: AsyncSession,
    quota: QuotaService,
    user_id: UUID,
    provider: str,
    endpoint: str,
    request_type: RequestType,
    content_id: UUID | None,
    started: float,
    error_code: str,
    error_message: str,
    metadata: dict[str, Any] | None = None,
) -> None:
    logger.warning("%s call for user %s failed: %s", provider, user_id, error_message)
    await quota.record_usage(
        db,
        user_id,
        provider,
        UsageOutcome(
            status=RequestStatus.FAILURE,
            endpoint=endpoint,
            request_type=request_type,
            content_id=content_id,
            duration_ms=_elapsed_ms(started),
            error_code=error_code,
            error_message=error_message,
            metadata=metadata or {},
        ),
        slot_reserved=True,
    )
