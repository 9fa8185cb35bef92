import json
import threading
import time
from collections import defaultdict
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import yaml
from behave import given, when, then

from apiping.bench.data_gen import DataGenerator
from apiping.bench.dispatcher import Caller
from apiping.bench.plan_runner import PlanRunner
from apiping.bench.types import ApiContext, WorkUnit
from apiping.export.result_sink import ResultSink
from apiping.sut.config import RunConfig
from apiping.sut.factory import ApiFactory
from apiping.sut.openapi_model import ApiModel, Operation


class MockServer:
    """Records every request; path prefixes can be told to delay, fail, crash or answer with a body."""

    def __init__(self):
        self.requests = []
        self.timeouts = {}
        self.refused = set()
        self.bodies = {}
        self.crashes = set()
        self._lock = threading.Lock()

    def _match(self, path, table):
        return next((prefix for prefix in table if path.startswith(prefix)), None)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        with self._lock:
            self.requests.append(request)

        prefix = self._match(path, self.timeouts)
        if prefix is not None:
            time.sleep(self.timeouts[prefix] / 1000)
            raise httpx.ReadTimeout("timed out", request=request)
        if self._match(path, self.refused) is not None:
            raise httpx.ConnectError("connection refused", request=request)
        if self._match(path, self.crashes) is not None:
            raise RuntimeError(f"handler crashed on {path}")

        prefix = self._match(path, self.bodies)
        body = self.bodies[prefix] if prefix is not None else "pong"
        return httpx.Response(200, text=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def _report_row(context, method, path):
    rows = {(r.method, r.path_template): r for r in context.report.results}
    assert (method, path) in rows, sorted(rows)
    return rows[(method, path)]


def _run(context, base_url, raw_config, transport=None):
    config = RunConfig.from_mapping(raw_config)
    ctx = ApiContext(base_url=base_url, title=context.model.title, model=context.model)
    runner = PlanRunner(
        factory=None,
        data_gen=DataGenerator(),
        result_sink=None,
        transport=transport,
    )
    context.report = runner.run_context(ctx, config)
    context.trackers = runner.trackers


@given("the api description:")
def step_api_description(context):
    context.api_text = context.text
    context.model = ApiModel.from_document(yaml.safe_load(context.text))


@given("a mock server")
def step_mock_server(context):
    context.server = MockServer()


@given('the mock server times out on "{prefix}" after {ms:d} ms')
def step_mock_timeout(context, prefix, ms):
    context.server.timeouts[prefix] = ms


@given('the mock server refuses connections on "{prefix}"')
def step_mock_refused(context, prefix):
    context.server.refused.add(prefix)


@given('the mock server answers "{prefix}" with a two line body')
def step_mock_two_lines(context, prefix):
    context.server.bodies[prefix] = "pong\r\nline"


@given('the mock server crashes on "{prefix}"')
def step_mock_crash(context, prefix):
    context.server.crashes.add(prefix)


@given('the api description is saved as "{name}"')
def step_save_description(context, name):
    (context.workdir / name).write_text(context.api_text, encoding="utf-8")


@when('I ping "{base_url}" for {rounds:d} rounds with {workers:d} workers')
def step_ping(context, base_url, rounds, workers):
    _run(context, base_url, {"loop": rounds, "worker": workers}, context.server.transport())


@when('I ping "{base_url}" with settings:')
def step_ping_with_settings(context, base_url):
    raw = {row["key"]: row["value"] for row in context.table}
    _run(context, base_url, raw, context.server.transport())


@when('I call "{path}" on the mock server with a header named "{name}"')
def step_direct_call(context, path, name):
    with httpx.Client(transport=context.server.transport()) as client:
        unit = WorkUnit(method="get", path_template=path, url=f"http://mock{path}", headers={name: "x"})
        context.outcome = Caller(client).call(unit)


@when('I run the pinger on "{name}" against "{base_url}" writing "{out}"')
def step_full_run(context, name, base_url, out):
    config = RunConfig.from_mapping(
        {
            "input": str(context.workdir / name),
            "base": base_url,
            "out": str(context.workdir / out),
        }
    )
    runner = PlanRunner(
        factory=ApiFactory(),
        data_gen=DataGenerator(),
        result_sink=ResultSink(),
        transport=context.server.transport(),
    )
    context.report = runner.run(config)


@then("{n:d} routes were pingable per round")
def step_routes(context, n):
    assert context.report.routes == n, context.report.routes


@then("the mock server received {n:d} calls")
def step_call_count(context, n):
    assert len(context.server.requests) == n, len(context.server.requests)


@then('the mock server received no call to "{prefix}"')
def step_no_call(context, prefix):
    paths = [r.url.path for r in context.server.requests]
    assert not any(p.startswith(prefix) for p in paths), paths


@then("the report lists {n:d} paths")
def step_report_paths(context, n):
    assert len(context.report.results) == n, context.report.results


@then('the report for "{method}" "{path}" has {urls:d} urls and {responses:d} responses')
def step_report_samples(context, method, path, urls, responses):
    row = _report_row(context, method, path)
    assert len(row.urls) == urls, row.urls
    assert len(row.responses) == responses, row.responses


@then('the report for "{method}" "{path}" averages at least {ms:d} ms')
def step_report_average(context, method, path, ms):
    row = _report_row(context, method, path)
    assert row.average_ms >= ms, row.average_ms


@then('the report for "{method}" "{path}" has a response containing "{text}"')
def step_report_response(context, method, path, text):
    row = _report_row(context, method, path)
    assert any(text in r for r in row.responses), row.responses


@then("every round completed all of its calls")
def step_rounds_complete(context):
    assert context.trackers
    for tracker in context.trackers:
        assert tracker.finished and tracker.done == tracker.total, (tracker.done, tracker.total)


@then('every call carried the header "{name}" set to "{value}"')
def step_header_sent(context, name, value):
    assert context.server.requests
    for request in context.server.requests:
        assert request.headers.get(name) == value, dict(request.headers)


@then('the report file "{out}" lists {n:d} paths over {rounds:d} rounds')
def step_report_file(context, out, n, rounds):
    data = json.loads((context.workdir / out).read_text(encoding="utf-8"))
    assert data["rounds"] == rounds, data
    assert len(data["results"]) == n, data["results"]
    assert data["title"] == "Mock API", data["title"]
    by_path = defaultdict(list)
    for row in data["results"]:
        by_path[row["path"]].append(row["method"])
    assert sorted(by_path["/items/{id}"]) == ["GET", "POST"], by_path


@then('the call failed with an error mentioning "{text}"')
def step_direct_call_failed(context, text):
    outcome = context.outcome
    assert outcome.failed, outcome
    assert text in (outcome.error or ""), outcome.error


@then('the report for "{method}" "{path}" averages at most {ms:d} ms')
def step_report_average_at_most(context, method, path, ms):
    row = _report_row(context, method, path)
    assert row.average_ms <= ms, row.average_ms


@then("every path in the report averages at most {ms:d} ms")
def step_every_average_at_most(context, ms):
    slow = {r.path_template: r.average_ms for r in context.report.results if r.average_ms > ms}
    assert not slow, slow


@then("no call failed")
def step_no_failures(context):
    for row in context.report.results:
        assert row.responses == ("-",), (row.path_template, row.responses)


# Live server: a real socket for timeouts and connection pooling

class _LiveHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        server = self.server
        with server.lock:
            server.paths.append(self.path)
        try:
            if server.drip_prefix and self.path.startswith(server.drip_prefix):
                self._drip(server.drip_bytes, server.drip_gap_ms)
            else:
                time.sleep(server.delay_ms / 1000)
                self._answer(b"pong")
        except (BrokenPipeError, ConnectionResetError):
            # the client gave up on us
            self.close_connection = True

    def _answer(self, body):
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _drip(self, n, gap_ms):
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(n))
        self.end_headers()
        self.wfile.flush()
        for _ in range(n):
            time.sleep(gap_ms / 1000)
            self.wfile.write(b"x")
            self.wfile.flush()

    def log_message(self, format, *args):
        pass


class LiveServer(ThreadingHTTPServer):
    daemon_threads = True
    request_queue_size = 256

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _LiveHandler)
        self.lock = threading.Lock()
        self.paths = []
        self.delay_ms = 0
        self.drip_prefix = None
        self.drip_bytes = 0
        self.drip_gap_ms = 0

    @property
    def base_url(self):
        return f"http://127.0.0.1:{self.server_address[1]}"

    def start(self):
        threading.Thread(target=self.serve_forever, name="apiping-live-server", daemon=True).start()

    def stop(self):
        self.shutdown()
        self.server_close()


def _live_server(context):
    if getattr(context, "live", None) is None:
        context.live = LiveServer()
        context.live.start()
        context.add_cleanup(context.live.stop)
    return context.live


@given("a local server that waits {ms:d} ms before answering")
def step_live_delay(context, ms):
    _live_server(context).delay_ms = ms


@given('the local server drips {n:d} bytes {ms:d} ms apart on "{prefix}"')
def step_live_drip(context, n, ms, prefix):
    server = _live_server(context)
    server.drip_prefix = prefix
    server.drip_bytes = n
    server.drip_gap_ms = ms


@given('an api description with the plain paths "{paths}"')
def step_plain_paths(context, paths):
    context.model = _plain_model(p.strip() for p in paths.split(","))


@given("an api description with {n:d} plain paths")
def step_n_plain_paths(context, n):
    context.model = _plain_model(f"/p{i}" for i in range(n))


def _plain_model(paths):
    return ApiModel(title="Live API", paths={p: {"GET": Operation(method="GET", path=p)} for p in paths})


@when("I ping the local server with settings:")
def step_ping_live(context):
    raw = {row["key"]: row["value"] for row in context.table}
    _run(context, context.live.base_url, raw)


@then("the local server received {n:d} calls")
def step_live_calls(context, n):
    with context.live.lock:
        received = len(context.live.paths)
    assert received == n, received
