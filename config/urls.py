"""
URL configuration for config project.
"""
import logging

from django.contrib import admin
from django.db import DatabaseError
from django.urls import path
from ninja import NinjaAPI

from authentication.api import router as auth_router
from buyers.api import router as buyers_router

logger = logging.getLogger(__name__)

# Create NinjaAPI instance
api = NinjaAPI(
    title="Buyer Leads API",
    description="Buyer lead intake and management API",
    version="1.0.0"
)

# Register API routers
api.add_router("/auth", auth_router, tags=["Authentication"])
api.add_router("/buyers", buyers_router, tags=["Buyers"])


@api.exception_handler(DatabaseError)
def database_error(request, exc):
    logger.error(f"Database error on {request.method} {request.path}: {exc}", exc_info=True)
    return api.create_response(request, {"error": "Internal server error"}, status=500)


urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', api.urls),
]
