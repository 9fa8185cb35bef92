import re

from behave import given, when, then

from apiping.bench.data_gen import DataGenerator
from apiping.sut.openapi_model import Schema


@given('an "{type}" schema with minimum {lo:d} and maximum {hi:d}')
def step_int_schema(context, type, lo, hi):
    context.schema = Schema(type=type, minimum=lo, maximum=hi)


@given('a "{type}" schema with maxLength {n:d}')
def step_max_length_schema(context, type, n):
    context.schema = Schema(type=type, max_length=n)


@given('a "{type}" schema with minLength {n:d}')
def step_min_length_schema(context, type, n):
    context.schema = Schema(type=type, min_length=n)


@given('a "{type}" schema with minLength {lo:d} and maxLength {hi:d}')
def step_length_range_schema(context, type, lo, hi):
    context.schema = Schema(type=type, min_length=lo, max_length=hi)


@given('an "{type}" schema without constraints')
@given('a "{type}" schema without constraints')
def step_plain_schema(context, type):
    context.schema = Schema(type=type)


@given("no schema")
def step_no_schema(context):
    context.schema = None


@when("I synthesize {n:d} values")
def step_synthesize(context, n):
    gen = DataGenerator()
    context.values = [gen.synthesize(context.schema) for _ in range(n)]


@then('every value is "{expected}"')
def step_every_value_is(context, expected):
    assert all(v == expected for v in context.values), context.values


@then("every value is an integer between {lo:d} and {hi:d}")
def step_every_value_in_range(context, lo, hi):
    for v in context.values:
        assert re.fullmatch(r"-?\d+", v), v
        assert lo <= int(v) <= hi, v


@then("every value has length {n:d}")
def step_every_value_length(context, n):
    assert all(len(v) == n for v in context.values), context.values


@then("every value is alphanumeric")
def step_every_value_alnum(context):
    for v in context.values:
        assert re.fullmatch(r"[A-Za-z0-9]+", v), v


@then("no value is produced")
def step_no_value(context):
    assert context.values and all(v is None for v in context.values), context.values
