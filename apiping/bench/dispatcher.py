from __future__ import annotations

import logging
import queue
import re
import threading
import time
from typing import Callable, Iterator, List, Mapping, Optional, Sequence, Tuple

import httpx

from apiping.bench.metrics import Aggregator
from apiping.bench.resolver import EndpointResolver
from apiping.bench.types import Outcome, RoundTracker, WorkUnit

logger = logging.getLogger(__name__)

_LINE_BREAK_RE = re.compile(r"\r?\n")

# Sentinel put once per worker to close the queue at round end
_STOP = object()


def elapsed_ms(start_ns: int) -> int:
    return (time.monotonic_ns() - start_ns) // 1_000_000


def _encode_headers(headers: Mapping[str, str]) -> dict:
    # httpx sends str values as ascii only; other text goes out as utf-8 bytes
    return {k: v.encode("utf-8") if isinstance(v, str) else v for k, v in headers.items()}


class DeadlineExceeded(Exception):
    """The call as a whole ran past its timeout."""


class Caller:
    """
    Executes a single work unit and always returns exactly one Outcome.

    httpx timeouts bound every connect/read/write on its own; the deadline
    bounds the whole call. Elapsed time is taken when the response headers
    arrive, the body (only read when capturing) is still held to the deadline.
    """

    def __init__(self, client: httpx.Client, capture_response: bool = False, timeout: float = 5.0) -> None:
        self.client = client
        self.capture_response = capture_response
        self.timeout = timeout

    def call(self, unit: WorkUnit) -> Outcome:
        method = unit.method.upper()
        start = time.monotonic_ns()
        deadline = time.monotonic() + self.timeout
        try:
            with self.client.stream(method, unit.url, headers=_encode_headers(unit.headers)) as response:
                took = elapsed_ms(start)
                self._check_deadline(deadline)
                body = self._read_body(response, deadline) if self.capture_response else None
        except Exception as e:
            # transport errors, timeouts, bad urls or header values: all end up as a failed call
            return Outcome(
                path_template=unit.path_template,
                method=method,
                url=unit.url,
                elapsed_ms=elapsed_ms(start),
                failed=True,
                error=f"[apiping] The HTTP request failed with error {e}",
            )

        return Outcome(
            path_template=unit.path_template,
            method=method,
            url=unit.url,
            elapsed_ms=took,
            response=body,
        )

    def _check_deadline(self, deadline: float) -> None:
        if time.monotonic() > deadline:
            raise DeadlineExceeded(f"call exceeded the timeout of {self.timeout:g}s")

    def _read_body(self, response: httpx.Response, deadline: float) -> str:
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            self._check_deadline(deadline)
        data = b"".join(chunks).decode(response.charset_encoding or "utf-8", errors="replace")
        return _LINE_BREAK_RE.sub(" ", data)


class Dispatcher:
    """
    Feeds one round of work units to a bounded pool of worker threads.

    count() and run_round() walk the same candidates, so the counted total
    always matches what a round dispatches.
    """

    def __init__(
        self,
        model,
        resolver: EndpointResolver,
        caller: Caller,
        aggregator: Aggregator,
        headers: Mapping[str, str],
        methods: Sequence[str] = ("GET", "POST"),
        workers: int = 1,
        on_progress: Optional[Callable[[RoundTracker], None]] = None,
    ) -> None:
        self.model = model
        self.resolver = resolver
        self.caller = caller
        self.aggregator = aggregator
        self.headers = headers
        self.methods = {m.upper() for m in methods}
        self.workers = max(1, int(workers))
        self.on_progress = on_progress

    def _candidates(self) -> Iterator[Tuple[str, str, str]]:
        for path, method, operation in self.model.operations():
            if method.upper() not in self.methods:
                continue
            url, ok = self.resolver.resolve(path, operation)
            if ok:
                yield path, method, url

    def count(self) -> int:
        return sum(1 for _ in self._candidates())

    def build_units(self) -> List[WorkUnit]:
        return [
            WorkUnit(method=method, path_template=path, url=url, headers=self.headers)
            for path, method, url in self._candidates()
        ]

    def run_round(self, round_index: int = 0) -> RoundTracker:
        """Dispatch every resolvable operation once and block until all are done."""
        units = self.build_units()
        tracker = RoundTracker(total=len(units), round_index=round_index)
        logger.info(tracker.message)

        jobs: "queue.Queue" = queue.Queue(maxsize=len(units) + self.workers)
        threads = [
            threading.Thread(
                target=self._work,
                args=(jobs, tracker),
                name=f"apiping-worker-{round_index}-{i}",
                daemon=True,
            )
            for i in range(self.workers)
        ]
        for t in threads:
            t.start()

        for unit in units:
            jobs.put(unit)
        for _ in threads:
            jobs.put(_STOP)

        for t in threads:
            t.join()

        logger.info("Round %d finished: %d/%d calls", round_index + 1, tracker.done, tracker.total)
        return tracker

    def _work(self, jobs: "queue.Queue", tracker: RoundTracker) -> None:
        while True:
            unit = jobs.get()
            if unit is _STOP:
                return
            try:
                self.aggregator.merge(self.caller.call(unit))
            except Exception:
                logger.exception("Worker failed to record %s %s", unit.method, unit.url)
            tracker.increment()
            if self.on_progress is not None:
                try:
                    self.on_progress(tracker)
                except Exception:
                    logger.exception("Progress callback failed")
