from django.contrib import admin

# Register your models here.
from .models import NotificationSettings, NotificationRecord
admin.site.register(NotificationSettings)


@admin.register(NotificationRecord)
class NotificationRecordAdmin(admin.ModelAdmin):
    list_display = ['task', 'reminder_minutes', 'notification_type', 'sent_at']
    list_filter = ['reminder_minutes']
