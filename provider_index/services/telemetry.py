"""OpenTelemetry logging and tracing for sync jobs"""

import logging
from datetime import datetime, timezone

from opentelemetry import trace
from opentelemetry._logs import SeverityNumber, set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from provider_index.config import config
from provider_index.models.sync import SyncJobResult

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


class TelemetryService:
    """Emit sync job results as OpenTelemetry log records and trace HTTP calls"""

    def __init__(self):
        self.logging_enabled = config.otel_logging_enabled
        self.tracing_enabled = config.otel_tracing_enabled
        self.logger_provider = None
        self.tracer_provider = None
        self.otel_logger = None

        if self.logging_enabled:
            try:
                self._initialize_logging()
            except Exception as e:
                logger.warning(f"Failed to initialize OTel logging: {e}. Logging disabled.")
                self.logging_enabled = False

        if self.tracing_enabled:
            try:
                self._initialize_tracing()
            except Exception as e:
                logger.warning(f"Failed to initialize OTel tracing: {e}. Tracing disabled.")
                self.tracing_enabled = False

    def _resource(self) -> Resource:
        return Resource(
            attributes={
                SERVICE_NAME: config.otel_service_name,
                SERVICE_VERSION: config.otel_service_version,
            }
        )

    def _signal_endpoint(self, path: str) -> str:
        """Collector URL for one OTLP signal, e.g. /v1/logs"""
        endpoint = config.otel_endpoint
        if endpoint.endswith(path):
            return endpoint
        return endpoint.rstrip("/") + path

    def _initialize_logging(self) -> None:
        """Initialize OpenTelemetry logging with OTLP log exporter"""
        self.logger_provider = LoggerProvider(resource=self._resource())
        log_endpoint = self._signal_endpoint("/v1/logs")

        self.logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(OTLPLogExporter(endpoint=log_endpoint))
        )
        set_logger_provider(self.logger_provider)
        self.otel_logger = self.logger_provider.get_logger(__name__)

        logger.info(f"OpenTelemetry logging initialized with endpoint: {log_endpoint}")

    def _initialize_tracing(self) -> None:
        """Initialize OpenTelemetry tracing with OTLP trace exporter"""
        self.tracer_provider = TracerProvider(resource=self._resource())
        trace_endpoint = self._signal_endpoint("/v1/traces")

        self.tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=trace_endpoint))
        )
        trace.set_tracer_provider(self.tracer_provider)

        # httpx instrumentation happens in _ensure_instrumentation_initialized(),
        # before any GitHub client is created

        logger.info(f"OpenTelemetry tracing initialized with endpoint: {trace_endpoint}")

    def log_sync_job(self, result: SyncJobResult) -> None:
        """
        Emit one log record for a finished sync job

        Args:
            result: Terminal state of the job
        """
        if not self.logging_enabled or not self.otel_logger:
            return

        try:
            # Attributes stay low cardinality; names go in the body
            attributes: dict[str, str | int | float | bool] = {
                "sync.mode": result.mode,
                "sync.success": result.success,
                "sync.duration_seconds": result.duration_seconds,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

            body_parts = [f"[sync:{result.mode}]", "SUCCESS" if result.success else "FAILED"]

            progress = result.progress
            if progress is not None:
                attributes["sync.total_repos"] = progress.total_repos
                attributes["sync.processed_repos"] = progress.processed_repos
                attributes["sync.skipped_repos"] = progress.skipped_repos
                attributes["sync.error_count"] = len(progress.errors)
                attributes["sync.updated_count"] = len(progress.updated_repos)
                body_parts.append(
                    f"processed={progress.processed_repos}/{progress.total_repos} "
                    f"skipped={progress.skipped_repos} errors={len(progress.errors)}"
                )
                if progress.updated_repos:
                    body_parts.append(f"updated={','.join(progress.updated_repos)}")

            if result.error:
                error_message = result.error
                if len(error_message) > MAX_ERROR_LENGTH:
                    error_message = error_message[:MAX_ERROR_LENGTH] + "..."
                attributes["error.message"] = error_message

            severity = logging.INFO if result.success else logging.ERROR
            self.otel_logger.emit(
                body=" ".join(body_parts),
                severity_number=SeverityNumber(self._severity_to_number(severity)),
                attributes=attributes,
                timestamp=int(datetime.now(timezone.utc).timestamp() * 1e9),
            )

        except Exception as e:
            # Telemetry errors never fail a sync
            logger.warning(f"Failed to log telemetry: {e}")

    def _severity_to_number(self, level: int) -> int:
        """Convert Python logging level to OpenTelemetry severity number"""
        # https://opentelemetry.io/docs/specs/otel/logs/data-model/#severity-fields
        if level >= logging.CRITICAL:
            return 21  # FATAL
        elif level >= logging.ERROR:
            return 17  # ERROR
        elif level >= logging.WARNING:
            return 13  # WARN
        elif level >= logging.INFO:
            return 9  # INFO
        else:
            return 5  # DEBUG


_telemetry_service: TelemetryService | None = None
_instrumentation_initialized = False


def _ensure_instrumentation_initialized() -> None:
    """Instrument httpx once so every GitHub client is traced"""
    global _instrumentation_initialized
    if not _instrumentation_initialized and config.otel_tracing_enabled:
        try:
            HTTPXClientInstrumentor().instrument()
            _instrumentation_initialized = True
            logger.info("HTTP request tracing instrumentation initialized")
        except Exception as e:
            logger.warning(f"Failed to initialize HTTP tracing instrumentation: {e}")


def get_telemetry_service() -> TelemetryService:
    """Get or create the global telemetry service instance"""
    global _telemetry_service
    _ensure_instrumentation_initialized()
    if _telemetry_service is None:
        _telemetry_service = TelemetryService()
    return _telemetry_service
