"""Logging configuration for the webhook service"""
import logging

from photovault.core.config import settings

# Detached tasks log from "webhook-bg" threads; the thread name tells them apart from request handling
LOG_FORMAT = '%(asctime)s - %(name)s [%(threadName)s] - %(levelname)s - %(message)s'

QUIET_LOGGERS = ("stripe", "resend", "httpx", "httpcore", "urllib3")


def setup_logging():
    """Configure root logging once at startup"""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S', force=True)

    # SDK request logs would echo payment payloads
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# Export commonly used loggers
webhook_logger = logging.getLogger("webhook")
churn_logger = logging.getLogger("churn")
monitor_logger = logging.getLogger("monitor")
