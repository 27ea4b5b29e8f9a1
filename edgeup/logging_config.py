"""Structured logging configuration."""
import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger
from opentelemetry import trace

from edgeup.config import OTEL_ENABLED, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME

# Loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps each record with the service and trace context."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            ctx = span.get_span_context()
            log_record['trace_id'] = format(ctx.trace_id, '032x')
            log_record['span_id'] = format(ctx.span_id, '016x')

        log_record['service'] = SERVICE_NAME

        if 'message' in log_record:
            log_record['msg'] = log_record.pop('message')


def _otlp_handler(level: int) -> Optional[logging.Handler]:
    """Handler that ships records to the collector, or None if it cannot be built."""
    # Logs SDK is still experimental upstream, imported only when exporting
    try:
        from opentelemetry._logs import set_logger_provider
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
        from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
        from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
        from opentelemetry.sdk.resources import Resource

        logger_provider = LoggerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
        logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(OTLPLogExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
        )
        set_logger_provider(logger_provider)
    except Exception as e:
        logging.warning(f"Failed to configure OTLP logging handler: {e}")
        return None

    return LoggingHandler(level=level, logger_provider=logger_provider)


def setup_logging(level: int = logging.INFO):
    """
    Configure JSON logging to stdout for the whole process.

    Existing root handlers are replaced, so calling this twice is harmless.
    With OTEL_ENABLED the same records are also exported over OTLP.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(CustomJsonFormatter(
        '%(levelname)s %(name)s %(message)s',
        rename_fields={'levelname': 'level'}
    ))
    root_logger.addHandler(console_handler)

    if OTEL_ENABLED:
        otlp_handler = _otlp_handler(level)
        if otlp_handler is not None:
            root_logger.addHandler(otlp_handler)
            logging.info("OTLP logging handler configured")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
