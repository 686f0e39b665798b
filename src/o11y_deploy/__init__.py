"""o11y-deploy: deploy a Prometheus based observability stack from discovered targets."""

__version__ = "0.1.0"
