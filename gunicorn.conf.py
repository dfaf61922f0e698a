# gunicorn.conf.py
"""
Gunicorn configuration for the ledger API.

Start with: gunicorn ledger.wsgi:application -c gunicorn.conf.py
"""
import multiprocessing

from decouple import config

# Server socket
bind = config('GUNICORN_BIND', default='0.0.0.0:8000')
backlog = 2048

# Worker processes. Allocation holds row locks for the length of a request,
# so keep requests short rather than raising the timeout.
workers = config('GUNICORN_WORKERS', default=multiprocessing.cpu_count() * 2 + 1, cast=int)
worker_class = 'sync'
timeout = 60
keepalive = 5
max_requests = 1000
max_requests_jitter = 50

preload_app = True

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = config('GUNICORN_LOG_LEVEL', default='info')
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = 'ledger-gunicorn'

# Graceful restart
graceful_timeout = 30

# TLS terminates at the proxy
forwarded_allow_ips = '*'
secure_scheme_headers = {
    'X-FORWARDED-PROTO': 'https',
}
