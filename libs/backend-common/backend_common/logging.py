import logging
import os
import sys
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import sentry_sdk
import structlog
from asgi_correlation_id.context import correlation_id
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog.contextvars import bound_contextvars, merge_contextvars


def _add_service_and_env(service_name: str):
    def processor(logger, method_name, event_dict):
        event_dict["service"] = service_name
        event_dict["env"] = os.getenv("APP_ENV", "local")
        return event_dict

    return processor


def _add_correlation_id(logger, method_name, event_dict):
    cid = correlation_id.get(None)
    if cid is not None:
        event_dict["correlation_id"] = cid
    return event_dict


def _bind_context_to_sentry(logger, method_name, event_dict):
    cid = event_dict.get("correlation_id")
    if cid is not None:
        sentry_sdk.set_tag("correlation_id", cid)
    session_id = event_dict.get("session_id")
    if session_id is not None:
        sentry_sdk.set_tag("session_id", str(session_id))
    return event_dict


def _select_renderer(is_dev: bool):
    log_format = os.getenv("LOG_FORMAT", "").strip().lower()
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "console" or is_dev:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging(default_service_name: str, extra_sentry_integrations: Iterable[object] | None = None) -> None:
    service_name = os.getenv("SERVICE_NAME", default_service_name)

    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    app_env = os.getenv("APP_ENV", "local")
    is_dev = app_env in {"local", "dev", "test"}

    if os.getenv("SENTRY_DSN"):
        integrations = [FastApiIntegration()]
        if extra_sentry_integrations is not None:
            integrations.extend(list(extra_sentry_integrations))
        integrations.append(LoggingIntegration(level=logging.INFO, event_level=logging.ERROR))

        sentry_sdk.init(
            dsn=os.getenv("SENTRY_DSN"),
            environment=app_env,
            integrations=integrations,
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
            send_default_pii=False,
        )
        sentry_sdk.set_tag("service", service_name)

    shared_processors = [
        merge_contextvars,
        _add_service_and_env(service_name),
        _add_correlation_id,
        _bind_context_to_sentry,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    structlog.configure(
        processors=shared_processors + [_select_renderer(is_dev)],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def bound_log_context(**values) -> Iterator[None]:
    """Bind key/values into every structlog event emitted inside the block.

    None values are dropped so optional ids do not clutter the output.
    """
    cleaned = {key: value for key, value in values.items() if value is not None}
    with bound_contextvars(**cleaned):
        yield
