"""
Core modules for Token Meter.

This package contains log scanning, parsing, deduplication, pricing,
daily aggregation, rate-limit windows and utilization merging.
"""
