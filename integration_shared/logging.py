"""
Structured logging for the integration auth gateway.

Logger names are dotted ``integration.<component>``; the component ends up as
its own field so log queries can filter on e.g. ``component=jwks``.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
tenant_alias_var: ContextVar[Optional[str]] = ContextVar("tenant_alias", default=None)

# httpx logs every request at INFO; platform calls are already logged by the
# clients with the tenant attached.
NOISY_LOGGERS = ("httpx", "httpcore")


def add_component(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the component (second dotted segment of the logger name)."""
    parts = event_dict.get("logger", "").split(".")
    if len(parts) > 1:
        event_dict["component"] = parts[1]
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the request id and tenant alias of the current task."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    tenant_alias = tenant_alias_var.get()
    if tenant_alias:
        event_dict.setdefault("tenant_alias", tenant_alias)
    return event_dict


def _processors(json_logs: bool) -> List[Any]:
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_component,
        add_correlation_context,
        renderer,
    ]


def configure_logging(service_name: str, log_level: str = "info", *, json_logs: bool = True) -> None:
    """Configure structlog and the stdlib root logger for one process.

    ``json_logs=False`` switches to the human-readable console renderer for
    local development.
    """
    level = getattr(logging, log_level.upper())
    structlog.configure(
        processors=_processors(json_logs),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    structlog.contextvars.bind_contextvars(service=service_name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id of the current task, generating one if not given."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_tenant_context(tenant_alias: Optional[str] = None) -> None:
    """Set the tenant the current task is acting for."""
    if tenant_alias:
        tenant_alias_var.set(tenant_alias)


def clear_context() -> None:
    request_id_var.set(None)
    tenant_alias_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
