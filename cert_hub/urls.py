"""URL configuration for the admin and the JSON API."""

from django.contrib import admin
from django.urls import path
from django.views.generic import RedirectView

from cert_hub.api import api

urlpatterns = [
    path("admin", RedirectView.as_view(url="/admin/", permanent=True)),  # Convenience redirect
    path("admin/", admin.site.urls),  # Keep trailing slash for admin compatibility
    path("api/", api.urls),
]
