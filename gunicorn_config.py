#!/usr/bin/env python
"""
Gunicorn configuration file for production deployment.

Reads settings from the central AppConfig class.

Usage:
    gunicorn -c gunicorn_config.py app:app
"""

# Import the centralized configuration
from beacon.config import AppConfig

# --- Server Socket ---
bind = AppConfig.GUNICORN_BIND
backlog = 2048

# --- Worker Processes ---
workers = AppConfig.GUNICORN_WORKERS
# Requests are synchronous; gthread or gevent give per-worker concurrency
worker_class = AppConfig.GUNICORN_WORKER_CLASS
threads = AppConfig.GUNICORN_THREADS
worker_connections = 1000
timeout = AppConfig.GUNICORN_TIMEOUT
keepalive = AppConfig.GUNICORN_KEEPALIVE

# --- Process Naming ---
proc_name = "beacon_analytics_api"
pythonpath = "."

# --- Logging ---
logger_class = 'gunicorn.glogging.Logger'
loglevel = AppConfig.LOG_LEVEL
# None lets Gunicorn log to stderr/stdout, suitable for containers
errorlog = None
accesslog = None

# --- Server Mechanics ---
# Not preloaded: every worker builds its own engine pool and Redis connections
preload_app = False
daemon = False
user = None
group = None
umask = 0
tmp_upload_dir = None

# --- Worker Lifecycle ---
max_requests = AppConfig.GUNICORN_MAX_REQUESTS
max_requests_jitter = AppConfig.GUNICORN_MAX_REQUESTS_JITTER

# --- Hooks ---
def on_starting(server):
    """Log when the server is starting."""
    missing = AppConfig.validate()
    server.log.info(f"Starting Beacon Analytics API server on {bind}")
    server.log.info(f"Using {workers} workers ({worker_class}, {threads} threads)")
    if missing:
        server.log.warning(f"Missing configuration: {', '.join(missing)}")

def on_exit(server):
    server.log.info("Shutting down Beacon Analytics API server")

def post_fork(server, worker):
    server.log.debug(f"Worker spawned (pid: {worker.pid})")

def worker_exit(server, worker):
    server.log.info(f"Worker exited (pid: {worker.pid}, exit_code: {worker.exit_code})")
