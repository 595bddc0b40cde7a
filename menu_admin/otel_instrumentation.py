"""
OpenTelemetry instrumentation for menu admin operations
Spans are no-ops unless an OpenTelemetry SDK is configured by the host
"""
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
import functools
import json
import logging

tracer = trace.get_tracer("menu_admin", "1.0.0")
logger = logging.getLogger(__name__)


PREVIEW_LIMIT = 500
PREVIEW_ITEMS = 20


def _redact(value):
    if isinstance(value, str):
        return value[:PREVIEW_LIMIT]
    if isinstance(value, dict):
        return {k: ("<image>" if k == "image" and v else _redact(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(v) for v in value[:PREVIEW_ITEMS]]
    return value


def _summarize(value, limit=PREVIEW_LIMIT):
    """JSON-ish preview of arguments for span events, inline images left out"""
    try:
        text = json.dumps(_redact(value), default=str)
    except (TypeError, ValueError):
        text = repr(_redact(value))
    return text[:limit]


def instrument_operation(operation_name):
    """Decorator to wrap async service methods in OpenTelemetry spans"""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with tracer.start_as_current_span(
                f"execute_operation {operation_name}",
                kind=trace.SpanKind.INTERNAL
            ) as span:
                span.set_attribute("operation.name", operation_name)
                # args[0] is the service instance
                span.add_event("operation_started", {
                    "operation.name": operation_name,
                    "operation.input": _summarize({"args": list(args[1:]), "kwargs": kwargs})
                })
                try:
                    result = await func(*args, **kwargs)

                    span.set_attribute("operation.status", "success")
                    span.set_status(Status(StatusCode.OK))
                    return result

                except Exception as e:
                    span.add_event("operation_failed", {
                        "operation.name": operation_name,
                        "error": str(e),
                        "error_type": type(e).__name__
                    })
                    span.set_attribute("operation.status", "error")
                    span.set_attribute("operation.error_type", type(e).__name__)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)

                    logger.info(f"[OPERATION_ERROR] {operation_name} - {type(e).__name__}: {e}")
                    raise
        return wrapper
    return decorator
