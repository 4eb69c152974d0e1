"""
Aggregator Module

This module attributes activity facts to character groups, classifies them,
buckets them in time and builds per-group and cross-group statistics.

Components:
- schemas.py - Fact, group, request and result models
- attribution.py - Fact-to-group attribution with deduplication
- classifier.py - Solo / group-solo / multi-party classification
- time_buckets.py - Calendar-aligned bucketing
- trend.py - Least-squares trend estimation
- summary.py - Per-group results and cross-group totals
- strategies.py - Kills, losses and plain value report strategies
- engine.py - Aggregation engine and kill/loss ratios
- repository.py, models/ - Database-backed fact source
- cache.py, retry.py - Result cache and fetch retry policy
- service.py - FastAPI application
"""
