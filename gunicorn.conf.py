import logging
import multiprocessing
import os

from app.app import init_db
from app.core.utils.config import construct_prod_settings
from app.core.utils.log import LogConfig

# Start with `gunicorn app.main:app -k uvicorn.workers.UvicornWorker`
# Adapted from https://github.com/tiangolo/uvicorn-gunicorn-docker/blob/master/docker-images/gunicorn_conf.py


def get_worker_count() -> int:
    if os.getenv("WEB_CONCURRENCY"):
        worker_count = int(os.environ["WEB_CONCURRENCY"])
        assert worker_count > 0  # noqa: S101
        return worker_count

    worker_count = max(
        int(float(os.getenv("WORKERS_PER_CORE", "1")) * multiprocessing.cpu_count()),
        2,
    )
    if os.getenv("MAX_WORKERS"):
        worker_count = min(worker_count, int(os.environ["MAX_WORKERS"]))
    return worker_count


bind = os.getenv("BIND") or f"{os.getenv('HOST', '0.0.0.0')}:{os.getenv('PORT', '80')}"  # noqa: S104
workers = get_worker_count()
loglevel = os.getenv("LOG_LEVEL", "info")
accesslog = os.getenv("ACCESS_LOG", "-") or None
errorlog = os.getenv("ERROR_LOG", "-") or None
worker_tmp_dir = "/dev/shm"  # noqa: S108
graceful_timeout = int(os.getenv("GRACEFUL_TIMEOUT", "120"))
timeout = int(os.getenv("TIMEOUT", "120"))
keepalive = int(os.getenv("KEEP_ALIVE", "5"))


def on_starting(server) -> None:
    """
    Create or migrate the database once, in the arbiter, before the workers are forked.

    See https://docs.gunicorn.org/en/stable/settings.html#on-starting
    """
    # `get_settings()` is cached: the workers would not see STUDIO_INIT_DB
    settings = construct_prod_settings()

    # Workers skip the database initialization of the lifespan
    os.environ["STUDIO_INIT_DB"] = "False"

    LogConfig().initialize_loggers(settings=settings)
    studio_error_logger = logging.getLogger("studio.error")

    studio_error_logger.warning(
        "Starting Gunicorn server and initializing the database.",
    )

    init_db(
        settings=settings,
        studio_error_logger=studio_error_logger,
        drop_db=False,
    )

    if not settings.REDIS_HOST:
        studio_error_logger.warning(
            "Redis is not configured: the rate limiter and the expired authorization codes cleanup are disabled.",
        )
