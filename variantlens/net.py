"""
Resilient call gateway
======================

Every outbound request in VariantLens goes through `Gateway.call`, which wraps a
single request with:

- a per-dependency circuit breaker (CLOSED -> OPEN -> HALF_OPEN -> CLOSED),
- a hard per-attempt timeout,
- bounded retries with exponential backoff plus jitter for 5xx / network /
  timeout failures,

and returns a `CallOutcome` (`Data`, `Absent` or `Unavailable`) instead of
raising. Circuit state lives in a `CircuitRegistry` object owned by whoever
builds the gateway, so tests construct isolated registries.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from .config import DEFAULT_POLICY, USER_AGENT, GatewayPolicy
from .utils.ledger import OutcomeLedger
from .utils.outcome import Absent, CallOutcome, Data, Unavailable, UnavailableReason, describe

log = logging.getLogger("variantlens.net")


def _ua_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    base = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    if extra:
        base.update(extra)
    return base


def parse_json_body(resp: httpx.Response) -> Any:
    if resp.status_code == 204 or not resp.content:
        return {}
    return resp.json()


@dataclass
class RequestSpec:
    url: str
    method: str = "GET"
    params: Optional[Dict[str, Any]] = None
    json_body: Any = None
    headers: Optional[Dict[str, str]] = None
    parse: Callable[[httpx.Response], Any] = parse_json_body


# ----------------------------------------------------------------------------
# Circuit breaker
# ----------------------------------------------------------------------------

class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class DependencyCircuit:
    name: str
    consecutive_failures: int = 0
    state: CircuitState = CircuitState.CLOSED
    reopen_at: float = 0.0
    last_failure_at: float = 0.0
    trial_in_flight: bool = False


class CircuitRegistry:
    """Process-lifetime circuit state, one entry per dependency name.

    Admission and recording each run under the dependency's own lock, so
    concurrent callers never lose or double-count a failure.
    """

    def __init__(self, policy: GatewayPolicy = DEFAULT_POLICY, clock: Callable[[], float] = time.monotonic):
        self.policy = policy
        self._clock = clock
        self._circuits: Dict[str, DependencyCircuit] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _entry(self, name: str) -> Tuple[DependencyCircuit, asyncio.Lock]:
        if name not in self._circuits:
            self._circuits[name] = DependencyCircuit(name=name)
            self._locks[name] = asyncio.Lock()
        return self._circuits[name], self._locks[name]

    def get(self, name: str) -> Optional[DependencyCircuit]:
        c = self._circuits.get(name)
        return replace(c) if c is not None else None

    async def admit(self, name: str) -> bool:
        circuit, lock = self._entry(name)
        async with lock:
            if circuit.state == CircuitState.CLOSED:
                return True
            if circuit.state == CircuitState.OPEN:
                if self._clock() < circuit.reopen_at:
                    return False
                circuit.state = CircuitState.HALF_OPEN
                circuit.trial_in_flight = True
                log.info("[circuit] %s entering HALF_OPEN (trial request)", name)
                return True
            # HALF_OPEN: exactly one trial at a time
            if circuit.trial_in_flight:
                return False
            circuit.trial_in_flight = True
            return True

    async def record_success(self, name: str) -> None:
        circuit, lock = self._entry(name)
        async with lock:
            circuit.trial_in_flight = False
            if circuit.consecutive_failures > 0 or circuit.state != CircuitState.CLOSED:
                log.info("[circuit] %s recovered, resetting to CLOSED", name)
                circuit.consecutive_failures = 0
                circuit.state = CircuitState.CLOSED
                circuit.reopen_at = 0.0

    async def record_failure(self, name: str, rate_limited: bool = False) -> None:
        circuit, lock = self._entry(name)
        async with lock:
            now = self._clock()
            circuit.trial_in_flight = False
            circuit.consecutive_failures += 1
            circuit.last_failure_at = now
            if (
                rate_limited
                or circuit.state == CircuitState.HALF_OPEN
                or circuit.consecutive_failures >= self.policy.failure_threshold
            ):
                cooldown = self.policy.rate_limit_cooldown if rate_limited else self.policy.cooldown
                circuit.state = CircuitState.OPEN
                circuit.reopen_at = now + cooldown
                log.warning(
                    "[circuit] %s OPEN failures=%d cooldown=%.0fs",
                    name, circuit.consecutive_failures, cooldown,
                )

    async def release_trial(self, name: str) -> None:
        """Free a half-open slot whose call ended without a recorded outcome."""
        circuit, lock = self._entry(name)
        async with lock:
            circuit.trial_in_flight = False

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        now = self._clock()
        out: Dict[str, Dict[str, Any]] = {}
        for name in sorted(self._circuits):
            c = self._circuits[name]
            out[name] = {
                "state": c.state.value,
                "consecutive_failures": c.consecutive_failures,
                "reopen_in_s": max(0.0, c.reopen_at - now) if c.state == CircuitState.OPEN else 0.0,
                "threshold": self.policy.failure_threshold,
            }
        return out


# ----------------------------------------------------------------------------
# Gateway
# ----------------------------------------------------------------------------

class Gateway:
    def __init__(
        self,
        http: httpx.AsyncClient,
        circuits: Optional[CircuitRegistry] = None,
        policy: Optional[GatewayPolicy] = None,
        ledger: Optional[OutcomeLedger] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.http = http
        self.policy = policy or (circuits.policy if circuits is not None else DEFAULT_POLICY)
        self.circuits = circuits or CircuitRegistry(self.policy)
        self.ledger = ledger
        self._sleep = sleep

    async def call(
        self,
        spec: RequestSpec,
        dependency: str,
        timeout: Optional[float] = None,
        allow_absent_on_404: bool = False,
        max_retries: Optional[int] = None,
    ) -> CallOutcome:
        if not await self.circuits.admit(dependency):
            outcome = Unavailable(
                UnavailableReason.CIRCUIT_OPEN, dependency, "Circuit is open due to previous failures"
            )
            await self._note(dependency, outcome, 0, spec.url)
            return outcome

        recorded = False
        try:
            outcome, attempts, rate_limited = await self._attempt(
                spec,
                dependency,
                self.policy.timeout if timeout is None else timeout,
                allow_absent_on_404,
                self.policy.max_retries if max_retries is None else max_retries,
            )
            if isinstance(outcome, Unavailable):
                await self.circuits.record_failure(dependency, rate_limited=rate_limited)
            else:
                await self.circuits.record_success(dependency)
            recorded = True
        finally:
            if not recorded:
                await self.circuits.release_trial(dependency)

        await self._note(dependency, outcome, attempts, spec.url)
        return outcome

    async def _attempt(
        self,
        spec: RequestSpec,
        dependency: str,
        timeout: float,
        allow_absent_on_404: bool,
        retries: int,
    ) -> Tuple[CallOutcome, int, bool]:
        attempt = 0
        reason = UnavailableReason.UNKNOWN
        detail: Optional[str] = None
        status: Optional[int] = None
        while True:
            try:
                resp = await asyncio.wait_for(self._send(spec, timeout), timeout=timeout)
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                reason, detail, status = UnavailableReason.TIMEOUT, f"timed out after {timeout}s: {e!r}", None
            except httpx.HTTPError as e:
                reason, detail, status = UnavailableReason.NETWORK_ERROR, str(e) or e.__class__.__name__, None
            else:
                status = resp.status_code
                if 200 <= status < 300:
                    try:
                        return Data(spec.parse(resp)), attempt + 1, False
                    except (ValueError, KeyError, TypeError, IndexError, AttributeError) as e:
                        return (
                            Unavailable(UnavailableReason.BAD_RESPONSE, dependency, f"unparseable body: {e}", status),
                            attempt + 1,
                            False,
                        )
                if status == 404 and allow_absent_on_404:
                    return Absent(dependency), attempt + 1, False
                if status == 429:
                    return (
                        Unavailable(UnavailableReason.RATE_LIMITED, dependency, "HTTP 429", status),
                        attempt + 1,
                        True,
                    )
                if status >= 500:
                    reason, detail = UnavailableReason.UPSTREAM_5XX, f"Upstream {status}"
                else:
                    return (
                        Unavailable(UnavailableReason.UNKNOWN, dependency, f"Client error {status}", status),
                        attempt + 1,
                        False,
                    )

            if attempt >= retries:
                break
            delay = self.policy.backoff_base * (2 ** attempt) + random.uniform(0, self.policy.jitter)
            log.warning(
                "[gateway] attempt %d failed for %s: %s. Retrying in %.0fms",
                attempt + 1, dependency, detail, delay * 1000,
            )
            await self._sleep(delay)
            attempt += 1

        return Unavailable(reason, dependency, detail, status), attempt + 1, False

    async def _send(self, spec: RequestSpec, timeout: float) -> httpx.Response:
        return await self.http.request(
            spec.method,
            spec.url,
            params=spec.params,
            json=spec.json_body,
            headers=_ua_headers(spec.headers),
            timeout=timeout,
        )

    async def _note(self, dependency: str, outcome: CallOutcome, attempts: int, url: str) -> None:
        label = describe(outcome)
        if isinstance(outcome, Unavailable):
            log.info("[gateway] %s -> %s (%s)", dependency, label, outcome.detail)
        else:
            log.debug("[gateway] %s -> %s", dependency, label)
        if self.ledger is not None:
            reason = outcome.reason.value if isinstance(outcome, Unavailable) else None
            await self.ledger.add(dependency, label.split(":")[0], reason, attempts, url)

    async def status(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "circuits": self.circuits.snapshot(),
            "defaults": {
                "timeout": self.policy.timeout,
                "retries": self.policy.max_retries,
                "retry_base": self.policy.backoff_base,
                "cb": {
                    "threshold": self.policy.failure_threshold,
                    "open_seconds": self.policy.cooldown,
                    "rate_limit_seconds": self.policy.rate_limit_cooldown,
                },
            },
        }
        if self.ledger is not None:
            out["ledger"] = (await self.ledger.snapshot())["rollup"]
        return out
