"""
storefront/utils/logging.py
───────────────────────────
Configures structured logging for the storefront.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import request, session


class RequestFormatter(logging.Formatter):
    """
    Custom formatter that injects request info (IP, URL, user if logged in)
    into logs if a request context is available.
    """
    def format(self, record):
        if request:
            record.url = request.url
            record.remote_addr = request.remote_addr
            record.user = session.get('user_id', 'guest')
        else:
            # Background sync worker and CLI commands have no request
            record.url = None
            record.remote_addr = None
            record.user = None
        return super().format(record)


def setup_logging(app):
    """
    Configure rotating file logging: logs/app.log
    Max size: 5MB
    Backup count: 5 files
    Format: timestamp | level | module | ip | user | url | message

    Module loggers under `storefront.*` propagate to app.logger,
    so the cart and sync code only need logging.getLogger(__name__).
    """
    level = logging.DEBUG if app.debug else logging.INFO

    # 1. File Logger (skipped when the filesystem is read-only)
    if not app.testing:
        try:
            log_dir = os.path.join(app.root_path, '..', 'logs')
            os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'app.log'),
                maxBytes=5 * 1024 * 1024,
                backupCount=5
            )
            file_handler.setFormatter(RequestFormatter(
                '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | '
                '%(user)s | %(url)s | %(message)s'
            ))
            file_handler.setLevel(level)
            app.logger.addHandler(file_handler)
        except OSError as exc:
            app.logger.warning(f"File logging disabled: {exc}")

    # 2. Stdout Logger (picked up by the container/platform log collector)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
    ))
    stream_handler.setLevel(level)
    app.logger.addHandler(stream_handler)

    app.logger.setLevel(level)
    app.logger.info("Pharmacy storefront startup")
