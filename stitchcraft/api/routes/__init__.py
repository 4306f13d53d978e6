"""API routers."""
from .admin import router as admin_router
from .appointments import router as appointments_router
from .auth import router as auth_router
from .clients import router as clients_router
from .exports import router as exports_router
from .invitations import router as invitations_router
from .invoices import router as invoices_router
from .monitoring import router as monitoring_router
from .orders import router as orders_router
from .organizations import router as organizations_router
from .payments import router as payments_router
from .studio import router as studio_router
from .tracking import router as tracking_router
from .webhooks import router as webhooks_router

# Exports first: /clients/export must win over /clients/{client_id}.
api_routers = [
    exports_router,
    auth_router,
    clients_router,
    orders_router,
    payments_router,
    invoices_router,
    appointments_router,
    organizations_router,
    invitations_router,
    studio_router,
    admin_router,
    tracking_router,
    webhooks_router,
]

__all__ = ["api_routers", "monitoring_router"]
