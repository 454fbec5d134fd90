from fastapi import APIRouter


class CoreModule:
    """
    A group of endpoints mounted by `app.api`.

    Each `app/core/<module>/endpoints_<module>.py` file declares a `core_module`
    and registers its routes on `core_module.router`.
    """

    def __init__(
        self,
        root: str,
        tag: str,
        router: APIRouter | None = None,
    ):
        self.root = root
        self.tag = tag
        self.router = router or APIRouter(tags=[tag])
