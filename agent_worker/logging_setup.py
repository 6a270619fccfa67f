import logging

from opentelemetry import trace as otel_trace

from .request_context import get_request_context, get_trace_id

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
SILENT = "silent"
UVICORN_LEVELS = ("critical", "error", "warning", "info", "debug")


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            record.trace_id = get_trace_id() or "-"
        except Exception:
            record.trace_id = "-"
        # Active OpenTelemetry span, when tracing is enabled
        try:
            span = otel_trace.get_current_span()
            ctx = span.get_span_context() if span else None
            if ctx and ctx.is_valid:
                record.otel_trace_id = format(ctx.trace_id, "032x")
            else:
                record.otel_trace_id = "-"
        except Exception:
            record.otel_trace_id = "-"
        try:
            context = get_request_context()
            record.room_name = context.get("room_name") or "-"
            record.session_id = context.get("session_id") or "-"
            record.agent_id = context.get("agent_id") or "-"
        except Exception:
            record.room_name = "-"
            record.session_id = "-"
            record.agent_id = "-"
        return True


def level_for(log_level: str) -> int:
    """Map the LOG_LEVEL setting onto a logging level.

    ``silent`` drops informational logs but keeps warnings and errors.
    Unknown names fall back to INFO.
    """
    name = (log_level or "info").strip().upper()
    if name == SILENT.upper():
        return logging.WARNING
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def uvicorn_log_level(log_level: str) -> str:
    """Name of the uvicorn log level matching the LOG_LEVEL setting."""
    name = logging.getLevelName(level_for(log_level)).lower()
    return name if name in UVICORN_LEVELS else "info"


def configure_logging(log_level: str = "info") -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logging.getLogger("agent_worker").setLevel(level_for(log_level))
    install_logging_filter()


def install_logging_filter() -> None:
    filt = RequestContextFilter()
    root = logging.getLogger()
    for h in root.handlers:
        if any(isinstance(f, RequestContextFilter) for f in h.filters):
            continue
        h.addFilter(filt)
        if h.formatter:
            current = h.formatter._fmt or ""

            suffix_parts = []
            if "room_name" not in current:
                suffix_parts.append("room=%(room_name)s session=%(session_id)s agent=%(agent_id)s")
            if "trace_id" not in current:
                suffix_parts.append("trace=%(trace_id)s")
            if "otel_trace_id" not in current:
                suffix_parts.append("otel=%(otel_trace_id)s")

            if suffix_parts:
                new_fmt = current.rstrip() + " [" + " ".join(suffix_parts) + "]"
                h.setFormatter(logging.Formatter(new_fmt))
