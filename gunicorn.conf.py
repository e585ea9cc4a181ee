"""
Gunicorn configuration for the Admin Panel Metrics API.

Each worker opens its own pool against both stores, so the worker count is
capped by WORKERS rather than derived from the CPU count alone.
"""

import multiprocessing
import os

bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count() * 2 + 1, 8)))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
# a listing page may wait on two stores with per-query timeouts
timeout = 60
keepalive = 5
graceful_timeout = 30

proc_name = "admin-panel-metrics-api"

errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)s "%({x-request-id}o)s"'


def post_fork(server, worker):
    server.log.info("Worker spawned (pid: %s)", worker.pid)
