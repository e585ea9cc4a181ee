"""
Serving Module

HTTP API, Redis cache and dashboard summary.
"""
