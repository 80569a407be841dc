from unittest import mock

import pytest

import kubeconverge.converge as converge
from kubeconverge.converge import Poll, PollState
from kubeconverge.errors import ConvergenceTimeout, ExternalCallFailed
from kubeconverge.kinds import DeploymentKind

from .conftest import deployment_manifest


def replica_status(*observed: int):
    """Return a `get_status` mock that reports the `observed` replica counts in turn."""
    kind = DeploymentKind()
    manifests = [kind.parse(deployment_manifest(3, _)) for _ in observed]
    return mock.AsyncMock(side_effect=manifests)


class TestPollOnce:
    async def test_states(self):
        kind = DeploymentKind()

        get_status = replica_status(2)
        poll = await converge.poll_once(get_status, kind.is_converged, kind.progress)
        assert poll.state == PollState.POLLING
        assert (poll.current, poll.desired) == (2, 3)
        assert poll.error is None

        get_status = replica_status(3)
        poll = await converge.poll_once(get_status, kind.is_converged, kind.progress)
        assert poll.state == PollState.CONVERGED
        assert poll.observed.status.replicas == 3

    async def test_failed(self):
        err = ExternalCallFailed("GET", "/some/path", -1)
        get_status = mock.AsyncMock(side_effect=err)

        poll = await converge.poll_once(get_status, lambda _: True)
        assert poll == Poll(PollState.FAILED, error=err)

    async def test_without_progress(self):
        get_status = mock.AsyncMock(return_value="foo")
        poll = await converge.poll_once(get_status, lambda _: False)
        assert poll == Poll(PollState.POLLING, "foo")


class TestWaitForConvergence:
    async def test_converge_on_third_poll(self, nosleep):
        kind = DeploymentKind()
        get_status = replica_status(2, 2, 3)

        obj = await converge.wait_for_convergence(
            get_status, kind.is_converged, 60, kind.progress, interval=1, max_interval=4
        )
        assert obj.status.replicas == 3
        assert get_status.await_count == 3

        # Exponential back off between the polls.
        assert nosleep.await_args_list == [mock.call(1), mock.call(2)]

    async def test_converged_immediately(self, nosleep):
        get_status = mock.AsyncMock(return_value="done")
        ret = await converge.wait_for_convergence(get_status, lambda _: True, 60)
        assert ret == "done"
        assert get_status.await_count == 1
        assert not nosleep.called

    async def test_timeout_shorter_than_interval(self, nosleep):
        kind = DeploymentKind()
        get_status = mock.AsyncMock(return_value=kind.parse(deployment_manifest(3, 1)))
        is_converged = mock.MagicMock(wraps=kind.is_converged)

        with pytest.raises(ConvergenceTimeout) as exc:
            await converge.wait_for_convergence(
                get_status, is_converged, 0.5, kind.progress, interval=1, max_interval=4
            )
        assert (exc.value.current, exc.value.desired) == (1, 3)

        # Must give up after the first poll and never report convergence.
        assert get_status.await_count == 1
        is_converged.assert_called_once_with(get_status.return_value)
        assert not nosleep.called

    async def test_timeout(self, nosleep):
        get_status = mock.AsyncMock(return_value="pending")

        # Back off 1s and 2s but stop before the 4s one exceeds the budget.
        with pytest.raises(ConvergenceTimeout):
            await converge.wait_for_convergence(
                get_status, lambda _: False, 3, interval=1, max_interval=4
            )
        assert get_status.await_count == 3
        assert nosleep.await_args_list == [mock.call(1), mock.call(2)]

    async def test_status_error_is_fatal(self, nosleep):
        """Errors while fetching the status abort the wait without retries."""
        kind = DeploymentKind()
        err = ExternalCallFailed("GET", "/some/path", 500)
        get_status = mock.AsyncMock(
            side_effect=[kind.parse(deployment_manifest(3, 1)), err]
        )

        with pytest.raises(ExternalCallFailed) as exc:
            await converge.wait_for_convergence(
                get_status, kind.is_converged, 60, kind.progress, interval=1
            )
        assert exc.value is err
        assert get_status.await_count == 2
        assert nosleep.await_count == 1
