"""
Gunicorn Configuration for the fleet fuel ledger
Production WSGI server settings

Ledger writes are serialized per vehicle inside one process and by
SELECT ... FOR UPDATE across processes, so more than one worker needs
PostgreSQL or MySQL.  With SQLite keep FLEET_LEDGER_WORKERS=1.
"""
import multiprocessing
import os

# Server Socket
bind = os.environ.get('FLEET_LEDGER_BIND', '127.0.0.1:8000')
backlog = 2048

# Worker Processes
workers = int(os.environ.get('FLEET_LEDGER_WORKERS') or multiprocessing.cpu_count() * 2 + 1)
worker_class = 'gthread'
threads = 4
max_requests = 1000
max_requests_jitter = 50
timeout = 60
keepalive = 5

# Logging
log_dir = os.environ.get('LOG_DIR', '/srv/fleet-ledger/logs')
accesslog = os.path.join(log_dir, 'gunicorn_access.log')
errorlog = os.path.join(log_dir, 'gunicorn_error.log')
loglevel = 'info'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process Naming
proc_name = 'fleet-ledger'

# Server Mechanics
daemon = False
pidfile = '/srv/fleet-ledger/gunicorn.pid'
umask = 0o007

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def post_fork(server, worker):
    """Called after a worker has been forked"""
    server.log.info("Worker spawned (pid: %s)", worker.pid)


def when_ready(server):
    """Called when the server is ready"""
    server.log.info("Fleet ledger ready. Spawning workers")


def worker_abort(worker):
    """Called when a worker fails to boot or times out"""
    worker.log.info("worker received SIGABRT signal")
