import re

from behave import given, when, then

from apiping.bench.data_gen import DataGenerator
from apiping.bench.resolver import EndpointResolver
from apiping.sut.config import parse_filter
from apiping.sut.openapi_model import Operation, Parameter, Schema

_SCHEMA_COLUMNS = {
    "minimum": "minimum",
    "maximum": "maximum",
    "minLength": "min_length",
    "maxLength": "max_length",
}


def _cell(row, heading):
    if heading not in row.headings:
        return ""
    return row[heading].strip()


def _parameter_from_row(row) -> Parameter:
    schema = None
    if _cell(row, "type"):
        schema = Schema(type=_cell(row, "type"))
        for heading, attr in _SCHEMA_COLUMNS.items():
            value = _cell(row, heading)
            if value:
                setattr(schema, attr, int(value))
    return Parameter(
        name=_cell(row, "name"),
        location=_cell(row, "in"),
        required=_cell(row, "required").lower() == "true",
        schema=schema,
    )


@given('the base url "{base_url}"')
def step_base_url(context, base_url):
    context.base_url = base_url


@given('the path filter "{pattern}"')
def step_path_filter(context, pattern):
    context.path_filter = parse_filter(pattern)


@given('a "{method}" operation on "{path}" with parameters:')
def step_operation(context, method, path):
    context.operation = Operation(
        method=method,
        path=path,
        parameters=[_parameter_from_row(row) for row in context.table],
    )


@given('a "{method}" operation on "{path}" without parameters')
def step_bare_operation(context, method, path):
    context.operation = Operation(method=method, path=path)


@given("its request body is required")
def step_body_required(context):
    context.operation.request_body_required = True


@when("I resolve the operation")
def step_resolve(context):
    resolver = EndpointResolver(
        getattr(context, "base_url", ""),
        DataGenerator(),
        getattr(context, "path_filter", None),
    )
    context.url, context.ok = resolver.resolve(context.operation.path, context.operation)


@then('the resolved url is "{url}"')
def step_resolved_url(context, url):
    assert context.url == url, context.url


@then('the resolved url matches "{pattern}"')
def step_resolved_url_matches(context, pattern):
    assert re.search(pattern, context.url), context.url


@then("the operation is resolvable")
def step_resolvable(context):
    assert context.ok is True


@then("the operation is not resolvable")
def step_not_resolvable(context):
    assert context.ok is False
