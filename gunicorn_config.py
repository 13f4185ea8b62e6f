# Server Socket
bind = "127.0.0.1:10000"  # Only accessible locally, NGINX will proxy requests

# Worker Settings
# One worker owns the scan/queue threads
workers = 1
threads = 4
worker_class = "gthread"

# Security & Performance
timeout = 120
graceful_timeout = 90
keepalive = 5

# Logging
accesslog = "-"
errorlog = "-"
loglevel = "info"

# Process Name
proc_name = "attendance_engine_gunicorn"
