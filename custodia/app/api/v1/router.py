from fastapi import APIRouter

from custodia.app.api.v1.endpoints.health import router as health_router
from custodia.app.api.v1.endpoints.manifests import router as manifests_router
from custodia.app.api.v1.endpoints.returns import router as returns_router
from custodia.app.api.v1.endpoints.items import router as items_router
from custodia.app.api.v1.endpoints.cost_centers import router as cost_centers_router
from custodia.app.api.v1.endpoints.employees import router as employees_router
from custodia.app.api.v1.endpoints.suppliers import router as suppliers_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(manifests_router, tags=["manifests"])
router.include_router(returns_router, tags=["returns"])
router.include_router(items_router, tags=["items"])
router.include_router(cost_centers_router, tags=["cost_centers"])
router.include_router(employees_router, tags=["employees"])
router.include_router(suppliers_router, tags=["suppliers"])
