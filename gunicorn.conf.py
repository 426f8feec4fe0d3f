"""Gunicorn configuration for the pharmacy indent app."""
import os

# Network binding configuration. Defaults are suitable for containerized deployments.
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")

# Worker process count with a conservative default for small pharmacy servers.
workers = int(os.getenv("GUNICORN_WORKERS", "2"))

# The catalogue cache lives per worker; threads share it.
threads = int(os.getenv("GUNICORN_THREADS", "4"))

# Log to stdout/stderr by default so container orchestrators can capture logs.
accesslog = os.getenv("GUNICORN_ACCESS_LOGFILE", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOGFILE", "-")

forwarded_allow_ips = os.getenv("GUNICORN_FORWARDED_ALLOW_IPS", "*")
