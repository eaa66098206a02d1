"""
API v1 routers.
"""

from brokerage.api.v1.addresses import router as addresses_router
from brokerage.api.v1.auth import router as auth_router
from brokerage.api.v1.bundles import router as bundles_router
from brokerage.api.v1.charges import router as charges_router
from brokerage.api.v1.companies import router as companies_router
from brokerage.api.v1.dashboard import router as dashboard_router
from brokerage.api.v1.dispatches import router as dispatches_router
from brokerage.api.v1.drivers import router as drivers_router
from brokerage.api.v1.orders import router as orders_router
from brokerage.api.v1.settlements import router as settlements_router
from brokerage.api.v1.users import router as users_router

routers = [
    auth_router,
    orders_router,
    dispatches_router,
    charges_router,
    settlements_router,
    bundles_router,
    dashboard_router,
    companies_router,
    users_router,
    drivers_router,
    addresses_router,
]

__all__ = ["routers"]
