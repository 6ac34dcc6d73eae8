# orchestration/workflow_orchestrator.py
"""Retry loop around the story workflow endpoint.

Every call produces exactly one ``OrchestrationResult``. Transient failures
are absorbed by the retry policy; only a request that cannot be encoded
raises (``RequestEncodingError``).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from config import settings
from core.retry_policy import RetryPolicy, build_retry_policy
from core.workflow_transport import (
    ResponseReadError,
    TransportError,
    TransportResponse,
    WorkflowTransport,
)
from models.orchestration_models import (
    Attempt,
    AttemptOutcome,
    CancelledResult,
    ControlFlowExcludedResult,
    EnvelopeResult,
    FailureKind,
    FailureResult,
    OrchestrationResult,
    RetriesExhaustedResult,
    StoryResult,
    StoryTextResult,
    UnparsedResponseResult,
)
from models.story_models import StoryRequest
from processing.envelope import (
    ContentKind,
    EnvelopeDecodeError,
    decode_envelope,
    is_control_flow_excluded,
    unwrap_envelope,
)
from utils.logging import truncate_for_log

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SUCCESS_MESSAGE = "Story generation completed successfully"


class RequestEncodingError(ValueError):
    """The story request could not be serialized; never retried."""


class OrchestrationCancelled(Exception):
    """Internal signal: stop the loop and report cancellation."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class WorkflowOrchestrator:
    """Runs one logical story generation against the workflow service."""

    def __init__(
        self,
        transport: WorkflowTransport,
        retry_policy: RetryPolicy | None = None,
        target_url: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._transport = transport
        self._policy = retry_policy or build_retry_policy()
        self._target_url = target_url
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._policy.max_attempts

    @property
    def target_url(self) -> str:
        return self._target_url or settings.STORY_API_URL

    def encode_request(self, request: StoryRequest) -> bytes:
        try:
            return json.dumps(request.to_workflow_payload(), allow_nan=False).encode(
                "utf-8"
            )
        except (TypeError, ValueError) as exc:
            raise RequestEncodingError(f"Failed to prepare request: {exc}") from exc

    async def generate_story(
        self,
        request: StoryRequest,
        *,
        target_url: str | None = None,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> OrchestrationResult:
        """Call the workflow endpoint with retries and normalise its reply.

        ``cancel_event`` and ``timeout`` (seconds for the whole loop) abort the
        in-flight request or pending backoff and yield a ``CancelledResult``.
        """
        url = target_url or self.target_url
        body = self.encode_request(request)
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout if timeout is not None else None

        logger.info("Story generation request", target_url=url, **request.log_summary())
        logger.debug(f"Request payload JSON: {truncate_for_log(body)}")

        attempts: list[Attempt] = []
        try:
            for number in range(1, self.max_attempts + 1):
                attempt = await self._execute_attempt(
                    number, url, body, cancel_event, deadline
                )
                attempts.append(attempt)
                self._log_attempt(attempt, url)

                if attempt.outcome is AttemptOutcome.SUCCESS:
                    return self._finish(
                        self._success_result(attempt, attempts), started
                    )

                if self._policy.should_retry(number, attempt.outcome):
                    delay = self._policy.delay_for(number)
                    logger.info(
                        f"Attempt {number}: retrying in {delay:.2f} seconds due to: {attempt.outcome.value}."
                    )
                    await self._cancellable(self._sleep(delay), cancel_event, deadline)
                    continue

                return self._finish(self._terminal_result(attempt, attempts, url), started)
        except OrchestrationCancelled as exc:
            logger.warning(
                f"Story generation cancelled after {len(attempts)} attempt(s): {exc.reason}"
            )
            return self._finish(
                CancelledResult(
                    attempts=len(attempts),
                    message="Story generation was cancelled before completion",
                    http_status=504,
                    reason=exc.reason,
                    envelope=_last_envelope(attempts),
                    attempt_log=attempts,
                ),
                started,
            )

        # Unreachable while the policy treats the last attempt as terminal.
        logger.error("Retry loop ended without a terminal result")
        return self._finish(
            RetriesExhaustedResult(
                attempts=len(attempts),
                message="Story generation completed after retries",
                http_status=200,
                envelope=_last_envelope(attempts),
                attempt_log=attempts,
            ),
            started,
        )

    async def _execute_attempt(
        self,
        number: int,
        url: str,
        body: bytes,
        cancel_event: asyncio.Event | None,
        deadline: float | None,
    ) -> Attempt:
        loop = asyncio.get_running_loop()
        started = loop.time()
        logger.info(f"Attempt {number}/{self.max_attempts}: Making request to: {url}")

        try:
            response: TransportResponse = await self._cancellable(
                self._transport.post(url, body), cancel_event, deadline
            )
        except ResponseReadError as exc:
            return Attempt(
                number=number,
                outcome=AttemptOutcome.READ_ERROR,
                status_code=exc.status_code,
                error=str(exc),
                duration_seconds=loop.time() - started,
            )
        except TransportError as exc:
            return Attempt(
                number=number,
                outcome=AttemptOutcome.TRANSPORT_ERROR,
                error=str(exc),
                duration_seconds=loop.time() - started,
            )

        attempt = Attempt(
            number=number,
            outcome=AttemptOutcome.SUCCESS,
            status_code=response.status_code,
            headers=response.headers,
            body=response.body,
            duration_seconds=loop.time() - started,
        )

        if response.status_code >= 400:
            attempt.outcome = AttemptOutcome.HTTP_ERROR
            attempt.error = f"Target API returned error status {response.status_code}"
            return attempt

        try:
            attempt.envelope = decode_envelope(response.body)
        except EnvelopeDecodeError as exc:
            attempt.outcome = AttemptOutcome.PARSE_ERROR
            attempt.error = str(exc)
            return attempt

        if is_control_flow_excluded(attempt.envelope):
            attempt.outcome = AttemptOutcome.CONTROL_FLOW_EXCLUDED
        return attempt

    async def _cancellable(
        self,
        awaitable: Awaitable[T],
        cancel_event: asyncio.Event | None,
        deadline: float | None,
    ) -> T:
        """Await ``awaitable`` unless the caller cancels or the deadline passes."""
        if cancel_event is None and deadline is None:
            return await awaitable

        if cancel_event is not None and cancel_event.is_set():
            _discard(awaitable)
            raise OrchestrationCancelled("cancelled by caller")

        timeout = None
        if deadline is not None:
            timeout = deadline - asyncio.get_running_loop().time()
            if timeout <= 0:
                _discard(awaitable)
                raise OrchestrationCancelled("operation deadline exceeded")

        work = asyncio.ensure_future(awaitable)
        waiters: set[asyncio.Future[Any]] = {work}
        cancel_waiter: asyncio.Future[Any] | None = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)

        if work in done:
            return work.result()
        if cancel_waiter is not None and cancel_waiter in done:
            raise OrchestrationCancelled("cancelled by caller")
        raise OrchestrationCancelled("operation deadline exceeded")

    def _log_attempt(self, attempt: Attempt, url: str) -> None:
        log = logger.warning if attempt.outcome is not AttemptOutcome.SUCCESS else logger.info
        log(
            "Workflow attempt finished",
            method="POST",
            target_url=url,
            attempt=attempt.number,
            max_attempts=self.max_attempts,
            outcome=attempt.outcome.value,
            status_code=attempt.status_code,
            duration_seconds=round(attempt.duration_seconds, 3),
            error=attempt.error,
            body=truncate_for_log(attempt.body),
        )
        if attempt.headers:
            logger.debug(f"Attempt {attempt.number}: response headers: {attempt.headers}")

    def _success_result(
        self, attempt: Attempt, attempts: list[Attempt]
    ) -> OrchestrationResult:
        envelope = attempt.envelope or {}
        status_code = attempt.status_code or 200
        content = unwrap_envelope(envelope)

        if content.kind is ContentKind.STRUCTURED:
            logger.info(
                f"Attempt {attempt.number}: Successfully parsed nested JSON story content"
            )
            return StoryResult(
                attempts=attempt.number,
                message=SUCCESS_MESSAGE,
                http_status=status_code,
                envelope=envelope,
                attempt_log=attempts,
                story=content.story,
            )
        if content.kind is ContentKind.TEXT:
            logger.info(
                f"Attempt {attempt.number}: Failed to parse nested JSON, returning as string: {content.parse_error}"
            )
            return StoryTextResult(
                attempts=attempt.number,
                message=SUCCESS_MESSAGE,
                http_status=status_code,
                envelope=envelope,
                attempt_log=attempts,
                story_text=content.story_text or "",
                parse_error=content.parse_error,
            )
        return EnvelopeResult(
            attempts=attempt.number,
            message=SUCCESS_MESSAGE,
            http_status=status_code,
            envelope=envelope,
            attempt_log=attempts,
        )

    def _terminal_result(
        self, attempt: Attempt, attempts: list[Attempt], url: str
    ) -> OrchestrationResult:
        outcome = attempt.outcome
        suffix = self._give_up_suffix(attempt)
        if outcome is AttemptOutcome.TRANSPORT_ERROR:
            return FailureResult(
                attempts=attempt.number,
                message=attempt.error or "",
                http_status=500,
                attempt_log=attempts,
                kind=FailureKind.TRANSPORT,
                error=f"Failed to make request to story API {suffix}",
            )
        if outcome is AttemptOutcome.READ_ERROR:
            return FailureResult(
                attempts=attempt.number,
                message=attempt.error or "",
                http_status=500,
                attempt_log=attempts,
                kind=FailureKind.READ,
                error=f"Failed to read response from story API {suffix}",
            )
        if outcome is AttemptOutcome.HTTP_ERROR:
            return FailureResult(
                attempts=attempt.number,
                message=attempt.body_text,
                http_status=502,
                attempt_log=attempts,
                kind=FailureKind.SERVICE,
                error=f"Target API returned an error {suffix}",
                target_status=attempt.status_code,
                target_body=attempt.body_text,
                target_url=url,
            )
        if outcome is AttemptOutcome.PARSE_ERROR:
            return UnparsedResponseResult(
                attempts=attempt.number,
                message="Story generation completed but response parsing failed",
                http_status=attempt.status_code or 200,
                attempt_log=attempts,
                raw_response=attempt.body_text,
                parse_error=attempt.error or "",
            )
        if outcome is AttemptOutcome.CONTROL_FLOW_EXCLUDED:
            logger.warning(
                "Max retries reached, returning control-flow-excluded response"
            )
            return ControlFlowExcludedResult(
                attempts=attempt.number,
                message=f"Story generation completed but returned control-flow-excluded {suffix}",
                http_status=200,
                envelope=attempt.envelope,
                attempt_log=attempts,
            )
        return self._success_result(attempt, attempts)

    def _give_up_suffix(self, attempt: Attempt) -> str:
        # A policy may stop before the last attempt for some outcomes.
        if attempt.number >= self.max_attempts:
            return "after all retries"
        return f"after {attempt.number} attempt(s); outcome not retried"

    def _finish(
        self, result: OrchestrationResult, started: float
    ) -> OrchestrationResult:
        result.duration_seconds = asyncio.get_running_loop().time() - started
        logger.info(
            "Story generation finished",
            status=result.status,
            http_status=result.http_status,
            attempts=result.attempts,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result


def _last_envelope(attempts: list[Attempt]) -> dict[str, Any] | None:
    for attempt in reversed(attempts):
        if attempt.envelope is not None:
            return attempt.envelope
    return None


def _discard(awaitable: Awaitable[Any]) -> None:
    # Close coroutines that will never be awaited.
    close = getattr(awaitable, "close", None)
    if callable(close):
        close()
