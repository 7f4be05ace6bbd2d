"""In-process telemetry and tracing setup."""
