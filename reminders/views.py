import logging

from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from tasks.exceptions import StoreError
from .exceptions import NoContactConfigured
from .models import NotificationRecord, NotificationSettings
from .serializers import (
    NotificationRecordSerializer, NotificationSettingsSerializer, NotificationTriggerSerializer
)
from .services import ReminderService

logger = logging.getLogger(__name__)

TRIGGER_RESPONSE = openapi.Schema(
    type=openapi.TYPE_OBJECT,
    properties={
        'success': openapi.Schema(type=openapi.TYPE_BOOLEAN),
        'tasksChecked': openapi.Schema(type=openapi.TYPE_INTEGER),
        'notificationsSent': openapi.Schema(type=openapi.TYPE_INTEGER),
        'message': openapi.Schema(type=openapi.TYPE_STRING),
    }
)

ERROR_RESPONSE = openapi.Schema(
    type=openapi.TYPE_OBJECT,
    properties={'error': openapi.Schema(type=openapi.TYPE_STRING)}
)


class NotificationTriggerView(APIView):
    """Runs one reminder check: propagate recurring tasks, then send due reminders."""

    service_class = ReminderService

    @swagger_auto_schema(
        operation_description="Check pending tasks and send due reminders. testMode/sendNow ignore the reminder window and the sent-reminder ledger.",
        request_body=NotificationTriggerSerializer,
        responses={
            200: openapi.Response(description="Run completed", schema=TRIGGER_RESPONSE),
            400: openapi.Response(
                description="No contact configured or invalid payload",
                schema=ERROR_RESPONSE,
                examples={"application/json": {"error": "No email or phone number configured for notifications."}}
            ),
            500: openapi.Response(description="Store failure", schema=ERROR_RESPONSE),
        },
        tags=['Notifications']
    )
    def post(self, request, *args, **kwargs):
        serializer = NotificationTriggerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return self.run(
            overrides=data.get('settings') or None,
            test_mode=data['testMode'],
            send_now=data['sendNow'],
        )

    @swagger_auto_schema(
        operation_description="Scheduled check with the default settings.",
        responses={200: openapi.Response(description="Run completed", schema=TRIGGER_RESPONSE)},
        tags=['Notifications']
    )
    def get(self, request, *args, **kwargs):
        return self.run()

    def run(self, overrides=None, test_mode=False, send_now=False):
        try:
            result = self.service_class().run(overrides=overrides, test_mode=test_mode, send_now=send_now)
        except NoContactConfigured as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except StoreError as e:
            logger.error(f"Reminder run failed: {e}")
            return Response({"error": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(result.as_response(), status=status.HTTP_200_OK)


class NotificationSettingsView(generics.RetrieveUpdateAPIView):
    serializer_class = NotificationSettingsSerializer

    def get_object(self):
        return NotificationSettings.load()


class NotificationRecordListView(generics.ListAPIView):
    """Reminders already sent, newest first."""
    serializer_class = NotificationRecordSerializer

    def get_queryset(self):
        queryset = NotificationRecord.objects.select_related('task')
        task_id = self.request.query_params.get('task')
        if task_id and task_id.isdigit():
            queryset = queryset.filter(task_id=int(task_id))
        return queryset
