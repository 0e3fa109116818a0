from django.urls import path
from .views import (
    TaskListCreateView, TaskDetailView, TaskToggleStatusView,
    TaskToggleNotificationsView, TaskOccurrencesView, GenerateRecurringTasksView
)

urlpatterns = [
    # Task endpoints
    path('', TaskListCreateView.as_view(), name='task-list-create'),
    path('<int:pk>/', TaskDetailView.as_view(), name='task-detail'),
    path('<int:pk>/toggle/', TaskToggleStatusView.as_view(), name='task-toggle-status'),
    path('<int:pk>/toggle-notifications/', TaskToggleNotificationsView.as_view(), name='task-toggle-notifications'),

    # Recurring task endpoints
    path('<int:pk>/occurrences/', TaskOccurrencesView.as_view(), name='task-occurrences'),
    path('recurring/generate/', GenerateRecurringTasksView.as_view(), name='generate-recurring-tasks'),
]
