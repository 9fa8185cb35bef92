from behave import given, when, then

from apiping.sut.factory import select_server
from apiping.sut.openapi_model import SpecError, load_model


def _split(text):
    return [part.strip() for part in text.split(",") if part.strip()]


def _operation(context, method, path):
    ops = context.model.paths.get(path) or {}
    assert method in ops, (path, sorted(ops))
    return ops[method]


@given('the document "{name}" containing:')
def step_document(context, name):
    (context.workdir / name).write_text(context.text, encoding="utf-8")


@when('I load the api model from "{name}"')
def step_load_model(context, name):
    context.model = load_model(str(context.workdir / name))


@when('I try to load the api model from "{name}"')
def step_try_load_model(context, name):
    context.error = None
    try:
        load_model(str(context.workdir / name))
    except SpecError as e:
        context.error = e


@then('the model is titled "{title}"')
def step_model_title(context, title):
    assert context.model.title == title, context.model.title


@then('the model lists the server "{url}"')
def step_model_server(context, url):
    assert url in context.model.servers, context.model.servers


@then('the model has the operations "{expected}"')
def step_model_operations(context, expected):
    found = [f"{method} {path}" for path, method, _ in context.model.operations()]
    assert found == _split(expected), found


@then('the "{method}" operation on "{path}" has an "{type}" parameter "{name}" in "{location}"')
@then('the "{method}" operation on "{path}" has a "{type}" parameter "{name}" in "{location}"')
def step_operation_parameter(context, method, path, type, name, location):
    op = _operation(context, method, path)
    params = {p.name: p for p in op.parameters}
    assert name in params, sorted(params)
    assert params[name].location == location, params[name]
    assert params[name].schema is not None and params[name].schema.type == type, params[name]


@then('the "{method}" operation on "{path}" has {n:d} parameters')
def step_operation_parameter_count(context, method, path, n):
    op = _operation(context, method, path)
    assert len(op.parameters) == n, op.parameters


@then('the "{method}" operation on "{path}" requires a request body')
def step_body_required(context, method, path):
    assert _operation(context, method, path).request_body_required is True


@then('the "{method}" operation on "{path}" does not require a request body')
def step_body_not_required(context, method, path):
    assert _operation(context, method, path).request_body_required is False


@then('loading fails with a spec error mentioning "{hint}"')
def step_spec_error(context, hint):
    assert context.error is not None, "no SpecError raised"
    assert hint in str(context.error), str(context.error)


@given('the servers "{servers}"')
def step_servers(context, servers):
    context.servers = _split(servers)


@given("no documented servers")
def step_no_servers(context):
    context.servers = []


@given('the answers "{answers}"')
def step_answers(context, answers):
    context.answers = _split(answers)
    context.asked = 0


@when("I select a server")
def step_select_server(context):
    answers = iter(context.answers)

    def ask(prompt):
        context.asked += 1
        return next(answers)

    context.selection = select_server(context.servers, ask)


@then('the selected server is "{url}"')
def step_selected(context, url):
    assert context.selection.ok is True, context.selection
    assert context.selection.url == url, context.selection


@then("no server was selected")
def step_not_selected(context):
    assert context.selection.ok is False, context.selection
    assert context.selection.url is None
    assert context.selection.reason


@then("I was asked {n:d} times")
def step_asked(context, n):
    assert context.asked == n, context.asked
