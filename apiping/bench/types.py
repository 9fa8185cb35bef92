from dataclasses import dataclass, field
import threading
from typing import Any, Dict, List, Mapping, Optional


@dataclass
class ApiContext:
    base_url: str
    title: str
    model: Any                 # ApiModel (apiping.sut.openapi_model)


@dataclass
class WorkUnit:
    method: str
    path_template: str
    url: str
    headers: Mapping[str, str]


@dataclass
class Outcome:
    path_template: str
    method: str
    url: str
    elapsed_ms: int
    response: Optional[str] = None
    failed: bool = False
    error: Optional[str] = None


@dataclass
class PathAggregate:
    path_template: str
    method: str
    total_elapsed_ms: int = 0
    # dicts used as insertion ordered sets
    urls: Dict[str, None] = field(default_factory=dict)
    responses: Dict[str, None] = field(default_factory=dict)


@dataclass(frozen=True)
class PathResult:
    path_template: str
    method: str
    average_ms: int
    urls: tuple
    responses: tuple


@dataclass
class RunReport:
    title: str
    created_at_ms: int
    routes: int                # dispatched units per round
    rounds: int
    results: List[PathResult]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "created_at_ms": self.created_at_ms,
            "routes": self.routes,
            "rounds": self.rounds,
            "results": [
                {
                    "path": r.path_template,
                    "method": r.method,
                    "avg_ms": r.average_ms,
                    "urls": list(r.urls),
                    "responses": list(r.responses),
                }
                for r in self.results
            ],
        }


class RoundTracker:
    """Thread-safe completion counter for one round, polled by progress renderers."""

    def __init__(self, total: int, round_index: int) -> None:
        self.total = total
        self.round_index = round_index
        self.message = f"Pinging {total} routes (Round {round_index + 1})"
        self._done = 0
        self._lock = threading.Lock()

    def increment(self, n: int = 1) -> None:
        with self._lock:
            self._done += n

    @property
    def done(self) -> int:
        with self._lock:
            return self._done

    @property
    def finished(self) -> bool:
        return self.done >= self.total
