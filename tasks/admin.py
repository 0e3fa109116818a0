from django.contrib import admin

# Register your models here.
from .models import Task


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ['title', 'status', 'priority', 'due_date', 'is_recurring', 'next_due_date', 'parent_task']
    list_filter = ['status', 'priority', 'is_recurring', 'notifications_enabled']
    search_fields = ['title', 'description']
