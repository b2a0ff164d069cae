"""
Monitoring module for application metrics
"""

from securevault.monitoring.metrics import metrics_registry, get_metrics, MetricsMiddleware

__all__ = [
    "metrics_registry",
    "get_metrics",
    "MetricsMiddleware",
]
