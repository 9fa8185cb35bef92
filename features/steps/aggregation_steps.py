import threading

from behave import given, when, then

from apiping.bench.metrics import Aggregator
from apiping.bench.types import Outcome


def _merge(context, method, path, url, ms, response=None, error=None):
    context.aggregator.merge(
        Outcome(
            path_template=path,
            method=method,
            url=url,
            elapsed_ms=ms,
            response=response,
            failed=error is not None,
            error=error,
        )
    )


@given("an empty aggregator")
def step_empty_aggregator(context):
    context.aggregator = Aggregator()


@given("an aggregator with a threshold of {ms:d} ms")
def step_threshold_aggregator(context, ms):
    context.aggregator = Aggregator(threshold_ms=ms)


@when('I merge an outcome for "{method}" "{path}" at "{url}" taking {ms:d} ms')
def step_merge(context, method, path, url, ms):
    _merge(context, method, path, url, ms)


@when('I merge an outcome for "{method}" "{path}" at "{url}" taking {ms:d} ms with response "{body}"')
def step_merge_with_response(context, method, path, url, ms, body):
    _merge(context, method, path, url, ms, response=body)


@when('I merge a failed outcome for "{method}" "{path}" at "{url}" taking {ms:d} ms with error "{error}"')
def step_merge_failed(context, method, path, url, ms, error):
    _merge(context, method, path, url, ms, error=error)


@when('{threads:d} threads each merge {n:d} outcomes for "{method}" "{path}" taking {ms:d} ms')
def step_concurrent_merge(context, threads, n, method, path, ms):
    start = threading.Barrier(threads)

    def worker(worker_id):
        start.wait()
        for i in range(n):
            _merge(context, method, path, f"http://x/hot/{worker_id}-{i}", ms)

    pool = [threading.Thread(target=worker, args=(t,)) for t in range(threads)]
    for t in pool:
        t.start()
    for t in pool:
        t.join()


@then('the aggregate for "{method}" "{path}" totals {ms:d} ms')
def step_total(context, method, path, ms):
    agg = context.aggregator.get(path, method)
    assert agg.total_elapsed_ms == ms, agg.total_elapsed_ms


@then('the aggregate for "{method}" "{path}" has {urls:d} urls and {responses:d} responses')
def step_samples(context, method, path, urls, responses):
    agg = context.aggregator.get(path, method)
    assert len(agg.urls) == urls, list(agg.urls)
    assert len(agg.responses) == responses, list(agg.responses)


@then('the aggregate for "{method}" "{path}" lists response "{text}"')
def step_lists_response(context, method, path, text):
    agg = context.aggregator.get(path, method)
    assert text in agg.responses, list(agg.responses)


@then('finalizing over {rounds:d} rounds reports {ms:d} ms for "{method}" "{path}"')
def step_finalize(context, rounds, ms, method, path):
    rows = {(r.method, r.path_template): r for r in context.aggregator.finalize(rounds)}
    assert rows[(method, path)].average_ms == ms, rows[(method, path)]


@then("the aggregator holds {n:d} aggregates")
def step_aggregate_count(context, n):
    assert len(context.aggregator) == n, len(context.aggregator)


@then("the aggregator merged {n:d} outcomes")
def step_merged_count(context, n):
    assert context.aggregator.merged == n, context.aggregator.merged
