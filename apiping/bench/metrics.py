import re
import threading
from typing import Dict, List, Tuple

from apiping.bench.types import Outcome, PathAggregate, PathResult

PLACEHOLDER_RE = re.compile(r"\{[^}]+\}")

NO_RESPONSE = "-"


class Aggregator:
    """
    Accumulates outcomes per (path template, method) across all rounds.

    merge() is called concurrently by every worker; a single lock covers the
    lookup-or-create and the update.
    """

    def __init__(self, threshold_ms: int = -1) -> None:
        # only outcomes slower than threshold_ms are collected; -1 collects all
        self.threshold_ms = threshold_ms
        self._results: Dict[Tuple[str, str], PathAggregate] = {}
        self._lock = threading.Lock()
        self.merged = 0

    def merge(self, outcome: Outcome) -> bool:
        if outcome.elapsed_ms <= self.threshold_ms:
            return False

        if outcome.failed:
            response = outcome.error or ""
        elif outcome.response is None:
            response = NO_RESPONSE
        else:
            response = outcome.response

        key = (outcome.path_template, outcome.method)
        with self._lock:
            agg = self._results.get(key)
            if agg is None:
                agg = PathAggregate(path_template=outcome.path_template, method=outcome.method)
                self._results[key] = agg

            # failed calls count towards latency too
            agg.total_elapsed_ms += outcome.elapsed_ms

            if PLACEHOLDER_RE.search(outcome.path_template) or not agg.urls:
                agg.urls.setdefault(outcome.url, None)
                agg.responses.setdefault(response, None)
            self.merged += 1
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def get(self, path_template: str, method: str) -> PathAggregate:
        with self._lock:
            return self._results[(path_template, method)]

    def finalize(self, rounds: int) -> List[PathResult]:
        """Average every aggregate over the round count. Call after the last round."""
        rounds = max(rounds, 1)
        with self._lock:
            return [
                PathResult(
                    path_template=agg.path_template,
                    method=agg.method,
                    average_ms=agg.total_elapsed_ms // rounds,
                    urls=tuple(agg.urls),
                    responses=tuple(agg.responses),
                )
                for agg in self._results.values()
            ]
