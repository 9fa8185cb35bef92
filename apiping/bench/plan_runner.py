from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

import httpx

from apiping.bench.dispatcher import Caller, Dispatcher
from apiping.bench.metrics import Aggregator
from apiping.bench.resolver import EndpointResolver
from apiping.bench.types import ApiContext, RoundTracker, RunReport

logger = logging.getLogger(__name__)


class PlanRunner:
    """
    Round orchestrator.

      1) Factory resolves the api description + base url (from config)
      2) A pre-pass counts the pingable routes
      3) The dispatcher runs `rounds` times, strictly one after another
      4) The aggregate is averaged over the rounds and handed to the sink
    """

    def __init__(self, factory, data_gen, result_sink, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.factory = factory
        self.data_gen = data_gen
        self.sink = result_sink
        self.transport = transport
        self.trackers: List[RoundTracker] = []
        self.on_progress: Optional[Callable[[RoundTracker], None]] = None

    def run(self, config) -> RunReport:
        ctx = self.factory.build(config)
        report = self.run_context(ctx, config)
        if self.sink is not None:
            self.sink.write(report, config.out)
        return report

    def run_context(self, ctx: ApiContext, config) -> RunReport:
        logger.info("Pinging '%s'", ctx.title)
        created_at_ms = int(time.time() * 1000)

        aggregator = Aggregator(threshold_ms=config.threshold_ms)
        resolver = EndpointResolver(ctx.base_url, self.data_gen, config.path_filter)

        with httpx.Client(
            timeout=httpx.Timeout(config.timeout),
            follow_redirects=True,
            # one connection per worker
            limits=httpx.Limits(max_connections=config.workers, max_keepalive_connections=config.workers),
            transport=self.transport,
        ) as client:
            dispatcher = Dispatcher(
                model=ctx.model,
                resolver=resolver,
                caller=Caller(client, capture_response=config.capture_response, timeout=config.timeout),
                aggregator=aggregator,
                headers=config.headers,
                methods=config.methods,
                workers=config.workers,
                on_progress=self.on_progress,
            )

            routes = dispatcher.count()
            logger.info("Pinging %d routes x %d rounds with %d workers", routes, config.rounds, config.workers)

            self.trackers = []
            for i in range(config.rounds):
                self.trackers.append(dispatcher.run_round(i))

        return RunReport(
            title=ctx.title,
            created_at_ms=created_at_ms,
            routes=routes,
            rounds=config.rounds,
            results=aggregator.finalize(config.rounds),
        )
