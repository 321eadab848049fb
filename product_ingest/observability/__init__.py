"""
Observability: structured logging and Prometheus metrics.
"""

from .logger import get_logger, log_operation, setup_logger
from .metrics import REGISTRY, generate_metrics

__all__ = [
    "get_logger",
    "setup_logger",
    "log_operation",
    "REGISTRY",
    "generate_metrics",
]
