# Stores keep their collections in process memory, so a single worker owns the data.
bind = "127.0.0.1:8000"
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
wsgi_app = "fieldtrack.main:app"
timeout = 30
graceful_timeout = 15
loglevel = "info"
accesslog = "-"
errorlog = "-"
