from behave import given, when, then

from apiping.__main__ import main
from apiping.sut.config import ConfigError, config_from_env, config_from_yaml


@given("an empty environment")
def step_empty_env(context):
    context.environ = {}


@given("the environment variables:")
def step_env_vars(context):
    context.environ = {row["name"]: row["value"] for row in context.table}


@given('a plan file "{name}" containing:')
def step_plan_file(context, name):
    (context.workdir / name).write_text(context.text, encoding="utf-8")


@when("I load the configuration from the environment")
def step_load_env(context):
    context.run_config = config_from_env(context.environ)


@when("I try to load the configuration from the environment")
def step_try_load_env(context):
    context.error = None
    try:
        config_from_env(context.environ)
    except ConfigError as e:
        context.error = e


@when('I load the configuration from "{name}"')
def step_load_yaml(context, name):
    context.run_config = config_from_yaml(str(context.workdir / name))


@when('I try to load the configuration from "{name}"')
def step_try_load_yaml(context, name):
    context.error = None
    try:
        config_from_yaml(str(context.workdir / name))
    except ConfigError as e:
        context.error = e


@when('I run the entry point with "{name}"')
def step_run_main(context, name):
    context.exit_code = main([str(context.workdir / name)])


@then("the configuration has {workers:d} workers, {rounds:d} rounds and a {timeout:g} second timeout")
def step_config_numbers(context, workers, rounds, timeout):
    assert context.run_config.workers == workers, context.run_config.workers
    assert context.run_config.rounds == rounds, context.run_config.rounds
    assert context.run_config.timeout == timeout, context.run_config.timeout


@then('the configured methods are "{methods}"')
def step_config_methods(context, methods):
    assert context.run_config.methods == methods.split(","), context.run_config.methods


@then('the configured header "{name}" is "{value}"')
def step_config_header(context, name, value):
    assert context.run_config.headers.get(name) == value, dict(context.run_config.headers)


@then("the configured headers cannot be modified")
def step_headers_read_only(context):
    try:
        context.run_config.headers["X-New"] = "1"
    except TypeError:
        return
    raise AssertionError("headers were modified")


@then("response capture is enabled")
def step_capture_on(context):
    assert context.run_config.capture_response is True


@then("response capture is disabled")
def step_capture_off(context):
    assert context.run_config.capture_response is False


@then('the path filter matches "{path}"')
def step_filter_matches(context, path):
    assert context.run_config.path_filter is not None
    assert context.run_config.path_filter.search(path)


@then('loading fails with a configuration error mentioning "{hint}"')
def step_config_error(context, hint):
    assert context.error is not None, "no ConfigError raised"
    assert hint in str(context.error), str(context.error)


@then("the exit code is {code:d}")
def step_exit_code(context, code):
    assert context.exit_code == code, context.exit_code
