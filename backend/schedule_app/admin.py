from django.contrib import admin
from .models import (
    Church,
    Event,
    EventException,
    EventSeries,
    EventTemplate,
    Service,
    ServiceTemplate,
    UnavailabilityPeriod,
)


@admin.register(Church)
class ChurchAdmin(admin.ModelAdmin):
    list_display = ['name', 'timezone', 'horizon_months', 'created_at']
    search_fields = ['name']
    readonly_fields = ['created_at']


@admin.register(EventSeries)
class EventSeriesAdmin(admin.ModelAdmin):
    list_display = ['name', 'church', 'recurring_weekday', 'anchor_start', 'terminated_at', 'created_at']
    list_filter = ['church', 'recurring_weekday', 'created_at']
    search_fields = ['name', 'description']
    readonly_fields = ['terminated_at', 'terminated_by', 'created_at']
    ordering = ['-created_at']


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ['name', 'church', 'kind', 'occurrence_date', 'start', 'end']
    list_filter = ['kind', 'church']
    search_fields = ['name', 'description']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-start']


@admin.register(EventException)
class EventExceptionAdmin(admin.ModelAdmin):
    list_display = ['series', 'occurrence_date', 'kind', 'actor', 'created_at']
    list_filter = ['kind', 'created_at']
    search_fields = ['series__name', 'reason']
    readonly_fields = ['created_at']
    ordering = ['-created_at']


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ['name', 'church', 'series', 'occurrence_date', 'event', 'leader']
    list_filter = ['church']
    search_fields = ['name']


@admin.register(UnavailabilityPeriod)
class UnavailabilityPeriodAdmin(admin.ModelAdmin):
    list_display = ['user', 'start_date', 'end_date', 'reason']
    ordering = ['-start_date']


@admin.register(ServiceTemplate)
class ServiceTemplateAdmin(admin.ModelAdmin):
    list_display = ['name', 'church', 'leader']
    list_filter = ['church']
    search_fields = ['name']


@admin.register(EventTemplate)
class EventTemplateAdmin(admin.ModelAdmin):
    list_display = ['name']
    search_fields = ['name']
    filter_horizontal = ['service_templates']
