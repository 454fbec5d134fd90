"""ASGI entry point: `uvicorn app.main:app`"""

from app.app import get_application
from app.dependencies import get_settings

# Tests build their own application with test settings instead of importing this module
app = get_application(settings=get_settings())
