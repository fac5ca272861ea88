from .metrics import BufferMetrics, MetricsCollector

__all__ = ["BufferMetrics", "MetricsCollector"]
