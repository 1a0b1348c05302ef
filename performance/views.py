"""
Performance App Views - Leaderboard, Badges & Milestones API
"""

from rest_framework import viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response

from core.permissions import IsStaffMember, IsSuperAdmin
from .models import EmployeeBadge, EmployeeMilestone
from .serializers import (
    EmployeeBadgeSerializer, EmployeeMilestoneSerializer,
    LeaderboardQuerySerializer,
)
from .services import PerformanceService, period_start


@api_view(['GET'])
@permission_classes([IsStaffMember])
def leaderboard(request):
    """
    Staff ranking for a metric and period.

    Query params: metric (revenue|invoices|estimates|shipments),
    period (week|month|quarter|year|all), limit.
    """
    query = LeaderboardQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)
    metric = query.validated_data['metric']
    period = query.validated_data['period']

    entries = PerformanceService.get_leaderboard(
        metric, period, limit=query.validated_data.get('limit')
    )
    start = period_start(period)
    return Response({
        'metric': metric,
        'period': period,
        'period_start': start.isoformat() if start else None,
        'results': entries,
    })


class EmployeeBadgeViewSet(viewsets.ReadOnlyModelViewSet):
    """Awarded badges; ?employee=, ?period=, ?metric=, ?tier=."""

    queryset = EmployeeBadge.objects.select_related('employee')
    serializer_class = EmployeeBadgeSerializer
    permission_classes = [IsStaffMember]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        for field in ('period', 'metric', 'tier'):
            if params.get(field):
                qs = qs.filter(**{field: params[field]})
        if params.get('employee'):
            qs = qs.filter(employee_id=params['employee'])
        return qs

    @action(detail=False, methods=['get'])
    def mine(self, request):
        return Response(PerformanceService.badge_summary(request.user))

    @action(detail=False, methods=['post'], permission_classes=[IsSuperAdmin])
    def award(self, request):
        """Run the badge award immediately."""
        return Response({'awarded': PerformanceService.award_badges()})


class EmployeeMilestoneViewSet(viewsets.ReadOnlyModelViewSet):
    """Recorded milestones; ?employee=, ?type=."""

    queryset = EmployeeMilestone.objects.select_related('employee')
    serializer_class = EmployeeMilestoneSerializer
    permission_classes = [IsStaffMember]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        if params.get('employee'):
            qs = qs.filter(employee_id=params['employee'])
        if params.get('type'):
            qs = qs.filter(milestone_type=params['type'])
        return qs

    @action(detail=False, methods=['get'])
    def mine(self, request):
        qs = self.get_queryset().filter(employee=request.user)
        return Response(self.get_serializer(qs, many=True).data)

    @action(detail=False, methods=['post'], permission_classes=[IsSuperAdmin])
    def check(self, request):
        """Check every staff member for new milestones now."""
        created = PerformanceService.check_milestones()
        return Response({
            'created': len(created),
            'milestones': self.get_serializer(created, many=True).data,
        })
