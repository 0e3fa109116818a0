from django.urls import path
from .views import NotificationTriggerView, NotificationSettingsView, NotificationRecordListView

urlpatterns = [
    path('', NotificationTriggerView.as_view(), name='notification-trigger'),
    path('settings/', NotificationSettingsView.as_view(), name='notification-settings'),
    path('sent/', NotificationRecordListView.as_view(), name='notification-records'),
]
