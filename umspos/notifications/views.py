from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.shortcuts import get_object_or_404

from .models import Notification
from .serializers import NotificationSerializer

FEED_LIMIT = 50


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_list(request):
    """
    Latest notifications, newest first.

    Pass ?after_id= to poll: rows newer than that id come back oldest first,
    at most FEED_LIMIT at a time, so a client can keep advancing to the
    largest id it has seen.
    """
    queryset = Notification.objects.select_related('created_by')

    after_id = request.query_params.get('after_id')
    if after_id is not None and after_id != '':
        try:
            after = int(after_id)
        except ValueError:
            after = -1
        if after < 0:
            return Response({'error': 'after_id must be a non-negative integer'}, status=status.HTTP_400_BAD_REQUEST)
        queryset = queryset.filter(id__gt=after).order_by('id')
    else:
        queryset = queryset.order_by('-id')

    notifications = list(queryset[:FEED_LIMIT])
    read_ids = set(
        request.user.notifications_read.filter(
            id__in=[n.id for n in notifications]
        ).values_list('id', flat=True)
    )
    unread_count = Notification.objects.exclude(read_by=request.user).count()

    serializer = NotificationSerializer(notifications, many=True, context={'read_ids': read_ids})
    return Response({
        'notifications': serializer.data,
        'unread_count': unread_count,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_mark_read(request, pk):
    """Mark one notification read for the current user"""
    notification = get_object_or_404(Notification, pk=pk)
    notification.read_by.add(request.user)
    return Response({'id': notification.id, 'is_read': True})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_mark_all_read(request):
    """Mark every notification read for the current user"""
    unread = list(Notification.objects.exclude(read_by=request.user).values_list('id', flat=True))
    request.user.notifications_read.add(*unread)
    return Response({'marked': len(unread), 'unread_count': 0})
