"""URL configuration for the Device Hub project."""

from django.contrib import admin
from django.urls import path

from devicehub.views import health_check

urlpatterns = [
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
]
