from crisiswatch.routes.keywords import router as keywords_router
from crisiswatch.routes.detection import router as detection_router
from crisiswatch.routes.categories import router as categories_router
from crisiswatch.routes.system import router as system_router

__all__ = [
    "keywords_router",
    "detection_router",
    "categories_router",
    "system_router"
]
