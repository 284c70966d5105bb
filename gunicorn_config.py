import os

# Server Socket
bind = os.environ.get('GUNICORN_BIND', '127.0.0.1:3000')  # NGINX proxies requests

# Worker Settings
# One process only: each worker would open its own WhatsApp session for the same account
workers = 1
threads = 4
worker_class = "gthread"

# Security & Performance
timeout = 120
graceful_timeout = 30  # Lets the session worker close the connection
keepalive = 5

# Logging
accesslog = os.environ.get('GUNICORN_ACCESS_LOG', '-')
errorlog = os.environ.get('GUNICORN_ERROR_LOG', '-')
loglevel = "info"

# Process Name
proc_name = "schoolbell_gunicorn"

wsgi_app = "wsgi:app"
