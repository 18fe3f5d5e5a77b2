"""
Benchmarking harness for containerized services under runtime configurations.

This package starts one container per configuration (JVM flag variants or a
natively compiled image), waits for it to become ready, drives a fixed HTTP
workload against it while sampling ``docker stats``, and summarises latency
percentiles and per-phase resource usage as console output, CSV/JSON files
and charts.
"""

from .main import main

__all__ = ["main"]
