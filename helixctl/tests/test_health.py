import pytest
from kubernetes.client.exceptions import ApiException

from helixctl.errors import HelixError, KubernetesAPIError, ReadinessTimeoutError
from helixctl.modules.health import wait_until_responsive


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class SequenceClient:
    def __init__(self, results):
        self.results = list(results)
        self.timeouts = []

    def list_nodes(self, timeout=None):
        self.timeouts.append(timeout)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def test_ready_after_errors_and_empty_lists():
    clock = FakeClock()
    api = SequenceClient([ConnectionError("refused"), [], ["node-1", "node-2"]])
    count = wait_until_responsive(api, timeout=30, attempt_timeout=5, clock=clock, sleep=clock.sleep)
    assert count == 2
    assert clock.sleeps == [1.0, 1.0]
    assert api.timeouts == [5, 5, 5]


def test_timeout_when_no_node_registers():
    clock = FakeClock()
    api = SequenceClient([[]])
    with pytest.raises(ReadinessTimeoutError) as excinfo:
        wait_until_responsive(api, timeout=5, interval=1.0, clock=clock, sleep=clock.sleep)
    assert isinstance(excinfo.value, TimeoutError)
    assert isinstance(excinfo.value, HelixError)
    assert len(api.timeouts) == 6


def test_rejected_credentials_fail_fast():
    clock = FakeClock()
    api = SequenceClient([ApiException(status=403, reason="Forbidden")])
    with pytest.raises(KubernetesAPIError) as excinfo:
        wait_until_responsive(api, timeout=600, clock=clock, sleep=clock.sleep)
    assert excinfo.value.status == 403
    assert clock.sleeps == []


def test_timeout_reports_last_error():
    clock = FakeClock()
    api = SequenceClient([ApiException(status=503, reason="Service Unavailable")])
    with pytest.raises(ReadinessTimeoutError, match="503 Service Unavailable"):
        wait_until_responsive(api, timeout=3, clock=clock, sleep=clock.sleep)
    assert len(api.timeouts) == 4
