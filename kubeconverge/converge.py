"""Poll K8s until the observed state matches the desired one.

Every poll ends in one of three states:

* POLLING: not there yet, try again after a back off,
* CONVERGED: done,
* FAILED: fetching the status failed, abort immediately.

Tenacity drives the loop. It only retries POLLING results and stops once
the next back off would exceed the time budget.

"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, NamedTuple, Tuple

import tenacity as tc

from kubeconverge.errors import ConvergenceTimeout, KubeConvergeError

# Convenience: global logger instance to avoid repetitive code.
logit = logging.getLogger("kubeconverge")


class PollState(Enum):
    POLLING = "polling"
    CONVERGED = "converged"
    FAILED = "failed"


class Poll(NamedTuple):
    state: PollState
    observed: Any = None
    error: KubeConvergeError | None = None
    current: Any = None
    desired: Any = None


async def _mysleep(delay: float):
    """This trivial function exists to mock out the `sleep` call during tests."""
    await asyncio.sleep(delay)


def _on_backoff(retry_state: tc.RetryCallState):
    """Log the current and desired state before each retry."""
    poll: Poll = retry_state.outcome.result()  # type: ignore
    logit.warning(
        f"Back off {retry_state.attempt_number} - waiting for convergence",
        {"current": poll.current, "desired": poll.desired},
    )


async def poll_once(
    get_status: Callable[[], Awaitable[Any]],
    is_converged: Callable[[Any], bool],
    progress: Callable[[Any], Tuple[Any, Any] | None] | None = None,
) -> Poll:
    """Fetch the status once and classify it."""
    try:
        observed = await get_status()
    except KubeConvergeError as err:
        logit.error("cannot fetch status", {"reason": str(err)})
        return Poll(PollState.FAILED, error=err)

    current, desired = (progress(observed) if progress else None) or (None, None)
    state = PollState.CONVERGED if is_converged(observed) else PollState.POLLING
    return Poll(state, observed, None, current, desired)


async def wait_for_convergence(
    get_status: Callable[[], Awaitable[Any]],
    is_converged: Callable[[Any], bool],
    timeout: float,
    progress: Callable[[Any], Tuple[Any, Any] | None] | None = None,
    interval: float = 2,
    max_interval: float = 20,
) -> Any:
    """Poll `get_status` until `is_converged` accepts its result.

    Inputs:
        get_status: async callable
            Fetches the observed state, eg the latest Deployment manifest.
        is_converged: callable
            Returns `True` if the observed state is the desired one.
        timeout: float
            Give up after this many seconds.
        progress: callable
            Returns the (current, desired) values to report while we wait.
        interval, max_interval: float
            Seconds between polls. The delay grows exponentially from
            `interval` to `max_interval`.

    Returns:
        The last observed state.

    Raises `ConvergenceTimeout` if the budget ran out and re-raises the error
    of `get_status` if it failed.

    """
    retrying = tc.AsyncRetrying(
        stop=tc.stop_before_delay(timeout),
        wait=tc.wait_exponential(multiplier=interval, min=interval, max=max_interval),
        retry=tc.retry_if_result(lambda poll: poll.state == PollState.POLLING),
        before_sleep=_on_backoff,
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),  # type: ignore
        sleep=_mysleep,
    )
    poll: Poll = await retrying(poll_once, get_status, is_converged, progress)

    if poll.state == PollState.FAILED:
        assert poll.error is not None
        raise poll.error

    if poll.state == PollState.POLLING:
        logit.error(
            f"no convergence after {timeout}s",
            {"current": poll.current, "desired": poll.desired},
        )
        raise ConvergenceTimeout(timeout, poll.current, poll.desired)

    logit.debug("converged", {"current": poll.current, "desired": poll.desired})
    return poll.observed
