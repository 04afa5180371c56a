import pytz
from rest_framework import serializers

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


class ChurchSerializer(serializers.ModelSerializer):

    class Meta:
        model = Church
        fields = '__all__'

    def validate_timezone(self, value):
        """Ensure the timezone is a known IANA name"""
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError:
            raise serializers.ValidationError(f"Unknown timezone: {value}")
        return value


class EventExceptionSerializer(serializers.ModelSerializer):
    """Serializer for EventException model (read side of overrides and cancellations)"""

    class Meta:
        model = EventException
        fields = '__all__'


class EventSeriesSerializer(serializers.ModelSerializer):
    """Serializer for EventSeries model with validation and nested exceptions"""

    exceptions = EventExceptionSerializer(many=True, read_only=True)

    class Meta:
        model = EventSeries
        fields = '__all__'
        read_only_fields = ['terminated_at', 'terminated_by', 'created_at']

    def validate(self, data):
        """Cross-field validation, falling back to stored values on partial updates"""
        def current(field):
            if field in data:
                return data[field]
            return getattr(self.instance, field, None)

        anchor_start = current('anchor_start')
        anchor_end = current('anchor_end')
        if anchor_start and anchor_end and anchor_end <= anchor_start:
            raise serializers.ValidationError("Anchor end must be after anchor start")

        is_recurring = current('is_recurring')
        if is_recurring is None:
            is_recurring = True
        if is_recurring and current('recurring_weekday') is None:
            raise serializers.ValidationError("Recurring series must have a weekday")

        return data


class EventSerializer(serializers.ModelSerializer):
    """Standalone events and the persisted rows behind overrides"""

    template = serializers.PrimaryKeyRelatedField(
        queryset=EventTemplate.objects.all(),
        write_only=True,
        required=False,
        allow_null=True,
        help_text="Event template whose service templates become the event's services",
    )

    class Meta:
        model = Event
        fields = '__all__'
        read_only_fields = ['kind', 'series', 'occurrence_date', 'created_at', 'updated_at']

    def validate(self, data):
        start = data.get('start', getattr(self.instance, 'start', None))
        end = data.get('end', getattr(self.instance, 'end', None))
        if start and end and end <= start:
            raise serializers.ValidationError("End must be after start")
        return data


class ServiceSerializer(serializers.ModelSerializer):

    class Meta:
        model = Service
        fields = '__all__'

    def validate_positions(self, value):
        if not isinstance(value, list) or not all(isinstance(p, str) and p for p in value):
            raise serializers.ValidationError("Positions must be a list of names")
        return value

    def validate_assignments(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Assignments must map position to volunteer id")
        return value

    def validate(self, data):
        def current(field):
            if field in data:
                return data[field]
            return getattr(self.instance, field, None)

        if (current('series') is None) == (current('event') is None):
            raise serializers.ValidationError("A service belongs to exactly one of series or event")

        if current('occurrence_date') and current('series') is None:
            raise serializers.ValidationError("Only series services can be pinned to a date")

        unknown = set(current('assignments') or {}) - set(current('positions') or [])
        if unknown:
            raise serializers.ValidationError(f"Assignments for unknown positions: {sorted(unknown)}")
        return data


class UnavailabilityPeriodSerializer(serializers.ModelSerializer):

    class Meta:
        model = UnavailabilityPeriod
        fields = '__all__'

    def validate(self, data):
        start_date = data.get('start_date', getattr(self.instance, 'start_date', None))
        end_date = data.get('end_date', getattr(self.instance, 'end_date', None))
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError("End date cannot be before start date")
        return data


class OccurrenceSerializer(serializers.Serializer):
    """Read-only view of a resolved occurrence"""

    key = serializers.SerializerMethodField()
    kind = serializers.CharField()
    series_id = serializers.IntegerField(allow_null=True)
    event_id = serializers.IntegerField(allow_null=True)
    exception_id = serializers.IntegerField(allow_null=True)
    church_id = serializers.IntegerField()
    occurrence_date = serializers.DateField()
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    name = serializers.CharField()
    description = serializers.CharField()

    def get_key(self, obj):
        return str(obj.key)


class IssueSerializer(serializers.Serializer):
    occurrence = OccurrenceSerializer()
    service_id = serializers.IntegerField(source='service.id')
    service_name = serializers.CharField(source='service.name')
    kind = serializers.CharField(source='kind.value')
    position = serializers.CharField(allow_null=True)
    user_id = serializers.CharField(allow_null=True)
    detail = serializers.CharField()


class ServiceTemplateSerializer(serializers.ModelSerializer):

    class Meta:
        model = ServiceTemplate
        fields = '__all__'

    def validate_positions(self, value):
        if not isinstance(value, list) or not all(isinstance(p, str) and p for p in value):
            raise serializers.ValidationError("Positions must be a list of names")
        return value


class EventTemplateSerializer(serializers.ModelSerializer):
    service_templates = serializers.PrimaryKeyRelatedField(
        queryset=ServiceTemplate.objects.all(),
        many=True,
        required=False,
    )

    class Meta:
        model = EventTemplate
        fields = '__all__'
