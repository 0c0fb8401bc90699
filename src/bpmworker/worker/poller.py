"""Submit a remote job and poll it until it reaches a terminal status."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from bpmworker.config import settings
from bpmworker.errors import RemoteJobFailed
from bpmworker.observability.metrics import metrics
from bpmworker.worker.lease import LeaseKeepAlive

logger = logging.getLogger(__name__)

S = TypeVar("S")


def _completed(status: Any) -> bool:
    return bool(getattr(status, "completed", False))


def _succeeded(status: Any) -> bool:
    return bool(getattr(status, "success", False))


class PollOutcome(Generic[S]):
    """Ticket and terminal status of a successful job."""

    def __init__(self, ticket: str, status: S, attempts: int):
        self.ticket = ticket
        self.status = status
        self.attempts = attempts


class AsyncJobPoller:
    """
    Generic submit / poll-until-terminal loop.

    Every iteration sleeps, extends the lease and then checks the status,
    in that order. The attempt cap is a count, not a deadline: a slow
    status call still consumes exactly one attempt.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._sleep = sleep

    async def run(
        self,
        submit: Callable[[], Awaitable[str]],
        poll: Callable[[str], Awaitable[S]],
        keep_alive: LeaseKeepAlive,
        poll_interval_ms: int,
        max_attempts: Optional[int] = None,
        is_terminal: Callable[[S], bool] = _completed,
        is_success: Callable[[S], bool] = _succeeded,
        service: str = "Remote job",
        error_code: Optional[str] = None,
    ) -> PollOutcome[S]:
        """
        Submit once, then poll up to `max_attempts` times.

        Returns the terminal status when it is successful. Raises
        `RemoteJobFailed` when the job fails or never becomes terminal.
        """
        if max_attempts is None:
            max_attempts = settings.remote_job_max_attempts
        lease_duration = getattr(keep_alive, "lease_duration_ms", None)
        if lease_duration and poll_interval_ms * 2 >= lease_duration:
            logger.warning(
                f"Poll interval exceeds half of the lease duration. "
                f"[service={service}, interval={poll_interval_ms}, lease={lease_duration}]"
            )

        ticket = await submit()
        logger.info(f"Submitted remote job. [service={service}, ticket={ticket}]")

        status: Optional[S] = None
        attempts = 0
        while attempts < max_attempts:
            attempts += 1
            await self._sleep(poll_interval_ms / 1000)
            await keep_alive.extend()

            metrics.inc_counter("job.poll", service)
            try:
                status = await poll(ticket)
            except Exception as e:
                # The remote service may not have registered the job yet
                logger.info(
                    f"Get status operation has failed. [service={service}, ticket={ticket}]: {e}"
                )
                continue

            if is_terminal(status):
                break

        if status is not None and is_terminal(status) and is_success(status):
            logger.info(
                f"Remote job completed. [service={service}, ticket={ticket}, attempts={attempts}]"
            )
            return PollOutcome(ticket, status, attempts)

        timed_out = status is None or not is_terminal(status)
        if timed_out:
            logger.warning(f"Remote job has timed out. [service={service}, ticket={ticket}]")
        raise RemoteJobFailed(
            service,
            ticket,
            comment=getattr(status, "comment", None),
            attempts=attempts,
            timed_out=timed_out,
            code=error_code,
        )
