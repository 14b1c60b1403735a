import multiprocessing

# Gunicorn Production Configuration
# Each worker process holds its own cart sync outbox and worker thread.
workers = multiprocessing.cpu_count() * 2 + 1
threads = 2
worker_class = 'gthread'

# Resilience
timeout = 120
max_requests = 1000
max_requests_jitter = 100
keepalive = 5
# Let the cart sync thread drain before a recycled worker exits
graceful_timeout = 30

# Logging
accesslog = '-'       # Stdout
errorlog = '-'        # Stderr
loglevel = 'info'
capture_output = True


def worker_exit(server, worker):
    """Flush pending cart writes held by the exiting worker."""
    from wsgi import app
    from storefront.cart.sync import get_cart_sync

    with app.app_context():
        sync = get_cart_sync()
        sync.stop()
        applied = sync.flush()
        if applied:
            server.log.info(f"Flushed {applied} pending cart write(s) on worker exit")
