"""
URL configuration for schedule_app.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    ChurchViewSet,
    EventSeriesViewSet,
    EventTemplateViewSet,
    EventViewSet,
    ServiceViewSet,
    ServiceTemplateViewSet,
    UnavailabilityPeriodViewSet,
    issues_view,
    occurrence_services_view,
    occurrences_view,
    summary_view,
)

# Create router for viewsets
router = DefaultRouter()
router.register(r'churches', ChurchViewSet)
router.register(r'series', EventSeriesViewSet)
router.register(r'events', EventViewSet)
router.register(r'services', ServiceViewSet)
router.register(r'service-templates', ServiceTemplateViewSet)
router.register(r'event-templates', EventTemplateViewSet)
router.register(r'unavailability', UnavailabilityPeriodViewSet)

urlpatterns = [
    # Include viewset URLs
    path('', include(router.urls)),

    # Resolved schedule reads
    path('occurrences/', occurrences_view, name='occurrences'),
    path('issues/', issues_view, name='issues'),
    path('summary/', summary_view, name='summary'),
    path('occurrence-services/', occurrence_services_view, name='occurrence-services'),
]
