"""Gunicorn settings for production. Usage: gunicorn -c gunicorn.conf.py "gateway.api:create_app()"."""

import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
workers = int(os.getenv("WEB_CONCURRENCY", "2"))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 30
graceful_timeout = 15
accesslog = None  # RequestIdMiddleware emits structured access logs
