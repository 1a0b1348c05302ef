"""
Performance App Serializers
"""

from rest_framework import serializers

from .models import EmployeeBadge, EmployeeMilestone, Metric, Period
from .services import BADGE_TIERS, MILESTONES


class EmployeeBadgeSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.display_name', read_only=True)
    icon = serializers.SerializerMethodField()
    label = serializers.SerializerMethodField()

    class Meta:
        model = EmployeeBadge
        fields = [
            'id', 'employee', 'employee_name', 'badge_type', 'tier', 'metric',
            'period', 'period_start', 'rank', 'value', 'icon', 'label', 'achieved_at',
        ]
        read_only_fields = fields

    def get_icon(self, obj):
        return BADGE_TIERS[obj.tier]['icon']

    def get_label(self, obj):
        return f"{obj.get_period_display()} {obj.get_metric_display()} {BADGE_TIERS[obj.tier]['label']}"


class EmployeeMilestoneSerializer(serializers.ModelSerializer):
    employee_name = serializers.CharField(source='employee.display_name', read_only=True)
    label = serializers.SerializerMethodField()

    class Meta:
        model = EmployeeMilestone
        fields = [
            'id', 'employee', 'employee_name', 'milestone_type', 'value',
            'label', 'achieved_at', 'notified_at',
        ]
        read_only_fields = fields

    def get_label(self, obj):
        for milestone in MILESTONES:
            if milestone['type'] == obj.milestone_type and milestone['value'] == obj.value:
                return milestone['label']
        return f"{obj.value} {obj.get_milestone_type_display()}"


class LeaderboardQuerySerializer(serializers.Serializer):
    metric = serializers.ChoiceField(choices=Metric.choices, default=Metric.REVENUE)
    period = serializers.ChoiceField(choices=Period.choices, default=Period.MONTH)
    limit = serializers.IntegerField(min_value=1, required=False)
