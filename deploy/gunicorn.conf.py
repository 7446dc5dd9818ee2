import multiprocessing
import os

bind = os.getenv("PORTAL_BIND", "0.0.0.0:8000")
workers = int(os.getenv("PORTAL_WORKERS", (multiprocessing.cpu_count() * 2) + 1))
worker_class = "uvicorn.workers.UvicornWorker"
wsgi_app = "portal.main:app"
timeout = 60
graceful_timeout = 30
keepalive = 5
loglevel = "info"
accesslog = "-"
errorlog = "-"
