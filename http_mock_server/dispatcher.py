"""Per-request composition of selection, delay and response synthesis."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .delay import DelayCalculator
from .matching import select_rule
from .models import MockConfig, RequestRule
from .request import MockRequest
from .responder import BufferedResponse, write_response

POLL_INTERVAL = 0.05


class Cancellation:
    """Cancellation signal for one request.

    Combines an explicit :meth:`cancel`, an optional probe reporting that the
    peer went away and an optional deadline in seconds from creation.
    """

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        timeout: Optional[float] = None,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self._event = threading.Event()
        self._probe = probe
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._poll_interval = poll_interval

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
        elif self._probe is not None and self._probe():
            self._event.set()
        return self._event.is_set()

    def sleep(self, seconds: float) -> bool:
        """Wait ``seconds``; return False as soon as cancellation is observed."""

        if self.cancelled:
            return False
        end = time.monotonic() + seconds
        while True:
            remaining = end - time.monotonic()
            if remaining <= 0:
                return True
            if self._event.wait(min(remaining, self._poll_interval)):
                return False
            if self.cancelled:
                return False


class Outcome(str, Enum):
    MATCHED = "matched"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"


@dataclass
class DispatchResult:
    outcome: Outcome
    rule: Optional[RequestRule] = None
    response: Optional[BufferedResponse] = None
    delay_ms: int = 0

    @property
    def status_code(self) -> Optional[int]:
        if self.outcome is Outcome.NOT_FOUND:
            return 404
        if self.response is not None:
            return self.response.status_code
        return None

    @property
    def headers(self) -> dict[str, str]:
        return self.response.headers if self.response is not None else {}

    @property
    def body(self) -> bytes:
        return self.response.body if self.response is not None else b""


class MockDispatcher:
    """Turns an inbound request into a configured response, 404 or nothing."""

    def __init__(self, config: MockConfig, delay_calculator: Optional[DelayCalculator] = None) -> None:
        self._rules = config.requests
        self._delays = delay_calculator or DelayCalculator()

    @property
    def rules(self) -> list[RequestRule]:
        return self._rules

    def dispatch(self, request: MockRequest, cancellation: Optional[Cancellation] = None) -> DispatchResult:
        rule = select_rule(self._rules, request)
        if rule is None:
            return DispatchResult(Outcome.NOT_FOUND)

        delay_ms = 0
        if rule.response_delay is not None:
            delay_ms = self._delays.calculate(rule.response_delay)
            cancellation = cancellation or Cancellation()
            if not cancellation.sleep(delay_ms / 1000):
                return DispatchResult(Outcome.CANCELLED, rule=rule, delay_ms=delay_ms)

        response = BufferedResponse()
        write_response(rule.response, response)
        return DispatchResult(Outcome.MATCHED, rule=rule, response=response, delay_ms=delay_ms)
