# task_manager\tasks\views.py
from datetime import timedelta

from django.shortcuts import get_object_or_404
from django.utils.timezone import now
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import filters, generics, status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import InvalidPattern, StoreError
from .models import Task
from .serializers import OccurrencePreviewSerializer, TaskSerializer
from .services import RecurringTaskService


class TaskListCreateView(generics.ListCreateAPIView):
    serializer_class = TaskSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['status', 'priority', 'is_recurring', 'notifications_enabled', 'parent_task']
    ordering_fields = ['due_date', 'priority', 'created_at']

    def get_queryset(self):
        queryset = Task.objects.all()

        # today / upcoming / overdue, same buckets as the list view
        view = self.request.query_params.get('view')
        current = now()
        if view == 'today':
            start = current.replace(hour=0, minute=0, second=0, microsecond=0)
            queryset = queryset.filter(due_date__gte=start, due_date__lt=start + timedelta(days=1))
        elif view == 'upcoming':
            queryset = queryset.filter(status=Task.STATUS_PENDING, due_date__gte=current)
        elif view == 'overdue':
            queryset = queryset.filter(status=Task.STATUS_PENDING, due_date__lt=current)
        elif view:
            raise ValidationError("view must be one of: today, upcoming, overdue.")

        return queryset

    def perform_create(self, serializer):
        task = Task(**serializer.validated_data)
        try:
            RecurringTaskService.prepare_new(task)
        except InvalidPattern as e:
            raise ValidationError({'recurrence_pattern': str(e)})
        serializer.save(next_due_date=task.next_due_date, recurrence_pattern=task.recurrence_pattern)


class TaskDetailView(generics.RetrieveUpdateDestroyAPIView):
    serializer_class = TaskSerializer
    queryset = Task.objects.all()

    SCHEDULE_FIELDS = ('is_recurring', 'recurrence_pattern', 'due_date')

    def perform_update(self, serializer):
        current = serializer.instance
        was_completed = current.status == Task.STATUS_COMPLETED

        # A new due date or recurrence restarts the chain from the due date
        schedule = {
            field: serializer.validated_data.get(field, getattr(current, field))
            for field in self.SCHEDULE_FIELDS
        }
        extra = {}
        if any(schedule[field] != getattr(current, field) for field in self.SCHEDULE_FIELDS):
            task = Task(**schedule)
            try:
                RecurringTaskService.reschedule(task)
            except InvalidPattern as e:
                raise ValidationError({'recurrence_pattern': str(e)})
            extra = {'next_due_date': task.next_due_date, 'recurrence_pattern': task.recurrence_pattern}

        task = serializer.save(**extra)
        # Completing through a regular edit advances the chain like the toggle does
        if not was_completed and task.status == Task.STATUS_COMPLETED:
            RecurringTaskService.complete(task)


class TaskToggleStatusView(APIView):
    """Flips a task between pending and completed."""

    @swagger_auto_schema(
        operation_description="Toggle a task between pending and completed. Completing a recurring task creates its next instance.",
        responses={
            200: openapi.Response(
                description="Updated task and the next instance, if any",
                schema=openapi.Schema(
                    type=openapi.TYPE_OBJECT,
                    properties={
                        'task': openapi.Schema(type=openapi.TYPE_OBJECT),
                        'next_instance': openapi.Schema(type=openapi.TYPE_OBJECT, nullable=True),
                    }
                )
            ),
            404: "Task not found"
        },
        tags=['Tasks']
    )
    def post(self, request, pk):
        task = get_object_or_404(Task, pk=pk)
        next_instance = None

        try:
            if task.status == Task.STATUS_COMPLETED:
                RecurringTaskService.reopen(task)
            else:
                next_instance = RecurringTaskService.complete(task)
        except StoreError as e:
            return Response({"error": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        task.refresh_from_db()
        return Response({
            "task": TaskSerializer(task).data,
            "next_instance": TaskSerializer(next_instance).data if next_instance else None,
        }, status=status.HTTP_200_OK)


class TaskToggleNotificationsView(APIView):

    def post(self, request, pk):
        task = get_object_or_404(Task, pk=pk)
        task.notifications_enabled = not task.notifications_enabled
        task.save(update_fields=['notifications_enabled', 'updated_at'])
        return Response(TaskSerializer(task).data, status=status.HTTP_200_OK)


class TaskOccurrencesView(APIView):
    """Preview of the upcoming occurrences of a recurring task."""

    @swagger_auto_schema(
        manual_parameters=[
            openapi.Parameter('count', openapi.IN_QUERY, type=openapi.TYPE_INTEGER, description="Number of occurrences (1-50)")
        ],
        responses={200: OccurrencePreviewSerializer},
        tags=['Tasks']
    )
    def get(self, request, pk):
        task = get_object_or_404(Task, pk=pk)
        try:
            count = int(request.query_params.get('count', 5))
        except ValueError:
            return Response({"error": "count must be an integer."}, status=status.HTTP_400_BAD_REQUEST)
        count = max(1, min(count, 50))

        try:
            upcoming = RecurringTaskService.preview(task, count=count)
        except InvalidPattern as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        serializer = OccurrencePreviewSerializer({"task": task.id, "occurrences": upcoming})
        return Response(serializer.data)


class GenerateRecurringTasksView(APIView):

    @swagger_auto_schema(
        operation_description="Create the instances of every recurring task whose next due date has arrived",
        responses={
            200: openapi.Response(description="Instances created", schema=TaskSerializer(many=True)),
            500: "Store failure"
        },
        tags=['Tasks']
    )
    def post(self, request, *args, **kwargs):
        try:
            created = RecurringTaskService.advance_due()
        except StoreError as e:
            return Response({"error": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(TaskSerializer(created, many=True).data, status=status.HTTP_200_OK)
