"""
URL configuration for the billing back office.

URL Structure:
    /admin/    - Django admin interface (read-mostly ledger inspection)

The ledger itself exposes no HTTP endpoints; services are called in-process.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
