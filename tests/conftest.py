from os import environ

from telemetry_metrics._internal.environment_variables import (
    OTEL_METRIC_EXPORT_INTERVAL,
    OTEL_METRIC_EXPORT_TIMEOUT,
    OTEL_SDK_DISABLED,
)

_ENVIRONMENT_VARIABLES = (
    OTEL_METRIC_EXPORT_INTERVAL,
    OTEL_METRIC_EXPORT_TIMEOUT,
    OTEL_SDK_DISABLED,
)
_saved_environment = {}


def pytest_sessionstart(session):
    for name in _ENVIRONMENT_VARIABLES:
        if name in environ:
            _saved_environment[name] = environ.pop(name)


def pytest_sessionfinish(session):
    environ.update(_saved_environment)
