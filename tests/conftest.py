from typing import Any, Callable, List, Optional, Tuple, Union

import httpx
import pytest

from variantlens.config import GatewayPolicy
from variantlens.net import CircuitRegistry, Gateway
from variantlens.utils.ledger import OutcomeLedger


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


Responder = Union[Callable[[httpx.Request], Any], Tuple[int, Any]]


class Routes:
    """URL-fragment dispatch table for httpx.MockTransport; unmatched URLs get 404."""

    def __init__(self):
        self.table: List[Tuple[str, Optional[str], Responder]] = []
        self.calls: List[httpx.Request] = []

    def add(self, fragment: str, responder: Responder, method: Optional[str] = None) -> "Routes":
        self.table.append((fragment, method, responder))
        return self

    def json(self, fragment: str, body: Any, status: int = 200, method: Optional[str] = None) -> "Routes":
        return self.add(fragment, lambda req: httpx.Response(status, json=body), method)

    def status(self, fragment: str, status: int, method: Optional[str] = None) -> "Routes":
        return self.add(fragment, lambda req: httpx.Response(status), method)

    def sequence(self, fragment: str, responses: List[Tuple[int, Any]]) -> "Routes":
        """Serve responses in order; the last one repeats."""
        queue = list(responses)

        def responder(req):
            status, body = queue.pop(0) if len(queue) > 1 else queue[0]
            return httpx.Response(status, json=body) if body is not None else httpx.Response(status)

        return self.add(fragment, responder)

    def count(self, fragment: str) -> int:
        return sum(1 for r in self.calls if fragment in str(r.url))

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        url = str(request.url)
        for fragment, method, responder in self.table:
            if fragment in url and (method is None or method == request.method):
                out = responder(request)
                if hasattr(out, "__await__"):
                    out = await out
                return out
        return httpx.Response(404)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def routes():
    return Routes()


@pytest.fixture
def policy():
    return GatewayPolicy(
        timeout=1.0,
        max_retries=3,
        backoff_base=0.5,
        jitter=0.0,
        failure_threshold=5,
        cooldown=30.0,
        rate_limit_cooldown=60.0,
    )


@pytest.fixture
def ledger():
    return OutcomeLedger(max_rows=50)


@pytest.fixture
def gateway(routes, clock, sleeper, policy, ledger):
    http = httpx.AsyncClient(transport=httpx.MockTransport(routes))
    return Gateway(http, circuits=CircuitRegistry(policy, clock=clock), ledger=ledger, sleep=sleeper)
