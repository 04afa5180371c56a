import pytz
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


WEEKDAY_CHOICES = [
    (0, 'Monday'),
    (1, 'Tuesday'),
    (2, 'Wednesday'),
    (3, 'Thursday'),
    (4, 'Friday'),
    (5, 'Saturday'),
    (6, 'Sunday'),
]


class OccurrenceKind(models.TextChoices):
    """How an occurrence on the schedule came to be."""

    VIRTUAL = 'virtual', 'Virtual'
    OVERRIDE = 'override', 'Override'
    CANCELLATION = 'cancellation', 'Cancellation'
    STANDALONE = 'standalone', 'Standalone'


EVENT_KIND_CHOICES = [
    (OccurrenceKind.OVERRIDE.value, OccurrenceKind.OVERRIDE.label),
    (OccurrenceKind.STANDALONE.value, OccurrenceKind.STANDALONE.label),
]

EXCEPTION_KIND_CHOICES = [
    (OccurrenceKind.OVERRIDE.value, OccurrenceKind.OVERRIDE.label),
    (OccurrenceKind.CANCELLATION.value, OccurrenceKind.CANCELLATION.label),
]


class Church(models.Model):
    """
    A congregation owning series, events and services.
    Its timezone decides which calendar day a timestamp belongs to.
    """

    name = models.CharField(max_length=200)
    timezone = models.CharField(max_length=64, default=settings.TIME_ZONE)
    horizon_months = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Months of recurring events to show. Empty = use the global setting",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def tzinfo(self):
        return pytz.timezone(self.timezone)

    def clean(self):
        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError:
            raise ValidationError(f"Unknown timezone: {self.timezone}")


class EventSeries(models.Model):
    """
    A weekly recurring template (e.g. the Sunday service).
    The anchor defines the first date, the time of day and the duration.
    A series is never deleted; terminating it bounds its future expansion.
    """

    church = models.ForeignKey(Church, on_delete=models.PROTECT, related_name='series')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_recurring = models.BooleanField(default=True)
    recurring_weekday = models.PositiveSmallIntegerField(
        choices=WEEKDAY_CHOICES,
        null=True,
        blank=True,
        help_text="0 = Monday ... 6 = Sunday",
    )
    anchor_start = models.DateTimeField(help_text="First occurrence start; sets the time of day")
    anchor_end = models.DateTimeField(help_text="First occurrence end; sets the duration")
    terminated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="No occurrence starting at or after this instant is generated",
    )
    terminated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['anchor_start']
        verbose_name_plural = 'event series'

    def __str__(self):
        if self.is_recurring and self.recurring_weekday is not None:
            return f"{self.name} (every {self.get_recurring_weekday_display()})"
        return self.name

    @property
    def duration(self):
        return self.anchor_end - self.anchor_start

    @property
    def is_terminated(self):
        return self.terminated_at is not None

    def clean(self):
        """Validate model constraints"""
        if self.anchor_start and self.anchor_end and self.anchor_end <= self.anchor_start:
            raise ValidationError("Anchor end must be after anchor start")

        if self.is_recurring and self.recurring_weekday is None:
            raise ValidationError("Recurring series must have a weekday")


class Event(models.Model):
    """
    A persisted occurrence: either a one-off standalone event or the concrete
    row behind an override of one series date.
    """

    church = models.ForeignKey(Church, on_delete=models.PROTECT, related_name='events')
    series = models.ForeignKey(
        EventSeries,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='override_events',
    )
    kind = models.CharField(max_length=20, choices=EVENT_KIND_CHOICES, default=OccurrenceKind.STANDALONE.value)
    occurrence_date = models.DateField(help_text="Calendar date in the church timezone")
    start = models.DateTimeField()
    end = models.DateTimeField()
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['start']

    def __str__(self):
        return f"{self.name} ({self.occurrence_date})"

    def clean(self):
        if self.start and self.end and self.end <= self.start:
            raise ValidationError("End must be after start")

        if self.kind == OccurrenceKind.OVERRIDE and self.series_id is None:
            raise ValidationError("Override events must belong to a series")


class EventException(models.Model):
    """
    Per-date override or cancellation of a series.
    At most one exception exists per (series, occurrence_date).
    """

    series = models.ForeignKey(EventSeries, on_delete=models.PROTECT, related_name='exceptions')
    occurrence_date = models.DateField(
        help_text="Calendar date of the affected occurrence in the church timezone"
    )
    kind = models.CharField(max_length=20, choices=EXCEPTION_KIND_CHOICES)
    event = models.OneToOneField(
        Event,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='exception',
        help_text="Replacement event of an override",
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['occurrence_date']
        constraints = [
            models.UniqueConstraint(
                fields=['series', 'occurrence_date'],
                name='unique_exception_per_occurrence',
            )
        ]

    def __str__(self):
        action = "Cancelled" if self.is_cancellation else "Overridden"
        return f"{action} occurrence of '{self.series.name}' on {self.occurrence_date}"

    @property
    def is_cancellation(self):
        return self.kind == OccurrenceKind.CANCELLATION

    def clean(self):
        if self.kind == OccurrenceKind.OVERRIDE and self.event_id is None:
            raise ValidationError("Override exceptions need a replacement event")

        if self.kind == OccurrenceKind.CANCELLATION and self.event_id is not None:
            raise ValidationError("Cancellations cannot carry a replacement event")


class Service(models.Model):
    """
    A set of roles to fill for an occurrence.

    Attached either to a series (every date when occurrence_date is empty,
    one date otherwise) or to a persisted event.
    """

    church = models.ForeignKey(Church, on_delete=models.PROTECT, related_name='services')
    series = models.ForeignKey(
        EventSeries,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='services',
    )
    occurrence_date = models.DateField(null=True, blank=True)
    event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='services',
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    positions = models.JSONField(default=list, blank=True, help_text="Role names like ['Vocalist', 'Drummer']")
    leader = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='led_services',
    )
    assignments = models.JSONField(default=dict, blank=True, help_text="Map of position to volunteer id")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def clean(self):
        if (self.series_id is None) == (self.event_id is None):
            raise ValidationError("A service belongs to exactly one of series or event")

        if self.occurrence_date and self.series_id is None:
            raise ValidationError("Only series services can be pinned to a date")

        unknown = set(self.assignments or {}) - set(self.positions or [])
        if unknown:
            raise ValidationError(f"Assignments for unknown positions: {sorted(unknown)}")


class UnavailabilityPeriod(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='unavailability')
    start_date = models.DateField()
    end_date = models.DateField()
    reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['start_date']

    def __str__(self):
        return f"{self.user} unavailable {self.start_date} - {self.end_date}"

    def covers(self, day):
        return self.start_date <= day <= self.end_date

    def clean(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError("End date cannot be before start date")


class ServiceTemplate(models.Model):
    """Reusable set of positions (and optionally a leader) for a church."""

    church = models.ForeignKey(Church, on_delete=models.CASCADE, related_name='service_templates')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    positions = models.JSONField(default=list, blank=True)
    leader = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class EventTemplate(models.Model):
    """
    A named bundle of service templates. Creating a standalone event from it
    creates one service per template.
    """

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    service_templates = models.ManyToManyField(ServiceTemplate, blank=True, related_name='event_templates')

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name
