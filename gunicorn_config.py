# Gunicorn Production Configuration
# One worker: the daily ledger is rewritten whole on every sale and has
# no row lock, so the register assumes a single writer.
bind = '0.0.0.0:8000'
workers = 1
threads = 4
worker_class = 'gthread'

# Resilience
timeout = 120
max_requests = 1000
max_requests_jitter = 100
keepalive = 5

# Logging
accesslog = '-'       # Stdout
errorlog = '-'        # Stderr
loglevel = 'info'
capture_output = True
