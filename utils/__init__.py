"""Utilities for the voting client."""

from .utils import (
    OperationContext,
    PerformanceMetrics,
    PerformanceMonitor,
    create_performance_report,
    format_duration,
    get_system_info,
    setup_logging,
    short_hex,
)

__all__ = [
    'setup_logging',
    'short_hex',
    'PerformanceMetrics',
    'PerformanceMonitor',
    'OperationContext',
    'create_performance_report',
    'format_duration',
    'get_system_info',
]
