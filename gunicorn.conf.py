# Gunicorn configuration for Brand Studio
# AI generation and Gmail analysis requests can run for minutes
import os

# A single worker keeps one APScheduler instance when ENABLE_SCHEDULER=1
workers = int(os.environ.get('WEB_CONCURRENCY', 1))
worker_class = 'gthread'
threads = 4

timeout = 300
graceful_timeout = 60
keepalive = 5

# Logging
accesslog = '-'
errorlog = '-'
loglevel = 'info'

bind = f"0.0.0.0:{os.environ.get('PORT', 5000)}"

wsgi_app = 'run:app'
