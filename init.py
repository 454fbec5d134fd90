import logging

from app.app import init_db
from app.core.utils.config import construct_prod_settings
from app.core.utils.log import LogConfig

# This script initializes the database and runs the migrations.
# It can be run before starting the server, for example in a container entrypoint:
# `python init.py && STUDIO_INIT_DB=False uvicorn app.main:app`

# We call `construct_prod_settings()` and not the dependency `get_settings()` because
# we know we want to use the production settings
settings = construct_prod_settings()

# Initialize loggers
LogConfig().initialize_loggers(settings=settings)

studio_error_logger = logging.getLogger("studio.error")

studio_error_logger.warning(
    "Initializing the database.",
)

init_db(
    settings=settings,
    studio_error_logger=studio_error_logger,
    drop_db=False,
)
