"""
Core modules for TimeCraft.

This package contains the deterministic transformer, prompt builder,
rate limiter and the orchestration that ties them to the hosted model.
"""
