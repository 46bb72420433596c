"""
Prometheus metrics for TokenVault service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for TokenVault service.
    """

    def __init__(self, service_name: str = "tokenvault", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics - TokenVault specific
        self.tokens_issued_total = Counter(
            "tokenvault_tokens_issued_total",
            "Total tokens issued",
            ["action"],
            registry=self.registry,
        )

        self.tokens_refreshed_total = Counter(
            "tokenvault_tokens_refreshed_total",
            "Total token refreshes",
            ["action"],
            registry=self.registry,
        )

        self.tokens_revoked_total = Counter(
            "tokenvault_tokens_revoked_total",
            "Total tokens revoked",
            registry=self.registry,
        )

        self.vault_operations_total = Counter(
            "tokenvault_vault_operations_total",
            "Vault seal/unseal operations",
            ["operation", "outcome"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        # Memory
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        # File descriptors
        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        # Update system metrics
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        process = psutil.Process(os.getpid())

        memory_info = process.memory_info()
        self.process_memory_bytes.labels(service=self.service_name).set(memory_info.rss)

        # num_fds() is not available on all platforms
        if hasattr(process, "num_fds"):
            self.process_open_fds.labels(service=self.service_name).set(process.num_fds())

    def record_token_issued(self, action: str):
        self.tokens_issued_total.labels(action=action).inc()

    def record_token_refreshed(self, action: str):
        self.tokens_refreshed_total.labels(action=action).inc()

    def record_tokens_revoked(self, count: int):
        if count > 0:
            self.tokens_revoked_total.inc(count)

    def record_vault_operation(self, operation: str, outcome: str):
        """Record a vault seal/unseal attempt ("ok" or "error")."""
        self.vault_operations_total.labels(operation=operation, outcome=outcome).inc()
