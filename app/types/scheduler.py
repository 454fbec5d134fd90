import asyncio
import logging
from typing import TYPE_CHECKING, Any

from arq import cron
from arq.connections import RedisSettings
from arq.typing import WorkerSettingsBase
from arq.worker import create_worker

from app.core.auth import utils_authorization_code
from app.types.sqlalchemy import SessionLocalType

if TYPE_CHECKING:
    from arq import Worker

scheduler_logger = logging.getLogger("scheduler")

CLEANUP_MINUTES = {0, 10, 20, 30, 40, 50}


def get_cleanup_expired_authorization_codes_task(
    SessionLocal: SessionLocalType,
):
    """
    Return the cron job deleting expired authorization codes.

    Jobs run outside of any request: they open their own database session.
    """

    async def cleanup_expired_authorization_codes_task(
        ctx: dict[Any, Any] | None,
    ) -> None:
        async with SessionLocal() as db:
            deleted_count = (
                await utils_authorization_code.cleanup_expired_authorization_codes(
                    db=db,
                )
            )
            await db.commit()
        scheduler_logger.info(
            f"Deleted {deleted_count} expired authorization codes",
        )

    return cleanup_expired_authorization_codes_task


class Scheduler:
    """
    Runs an [arq](https://arq-docs.helpmanual.io/) worker in a task of the application event loop.

    The worker only executes cron jobs. arq uses Redis to make sure a job runs once
    even when several server workers start a scheduler.
    """

    # See https://github.com/fastapi/fastapi/discussions/9143#discussioncomment-5157572

    def __init__(self):
        self.worker: Worker | None = None
        self.task: asyncio.Task | None = None

    async def start(
        self,
        redis_host: str,
        redis_port: int,
        redis_password: str | None,
        SessionLocal: SessionLocalType,
        **kwargs,
    ) -> None:
        class ArqWorkerSettings(WorkerSettingsBase):
            functions: list = []
            keep_result = 0
            keep_result_forever = False
            redis_settings = RedisSettings(
                host=redis_host,
                port=redis_port,
                password=redis_password or "",
            )
            cron_jobs = [
                cron(
                    get_cleanup_expired_authorization_codes_task(
                        SessionLocal=SessionLocal,
                    ),
                    name="cleanup_expired_authorization_codes",
                    minute=CLEANUP_MINUTES,
                ),
            ]

        # Signals are left to uvicorn or gunicorn
        # See https://github.com/python-arq/arq/issues/182
        self.worker = create_worker(
            ArqWorkerSettings,
            handle_signals=False,
            **kwargs,
        )
        self.task = asyncio.create_task(self.worker.async_run())

        scheduler_logger.info("Scheduler started")

    async def close(self) -> None:
        if self.worker is not None:
            await self.worker.close()


class OfflineScheduler(Scheduler):
    """
    Used when Redis is not configured. Expired authorization codes stay in the database,
    where they are refused by the token endpoint.
    """

    async def start(
        self,
        redis_host: str,
        redis_port: int,
        redis_password: str | None,
        SessionLocal: SessionLocalType,
        **kwargs,
    ) -> None:
        scheduler_logger.info("OfflineScheduler started")

    async def close(self) -> None:
        pass
