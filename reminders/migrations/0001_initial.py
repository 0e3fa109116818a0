from django.db import migrations, models
import django.core.validators
import django.db.models.deletion
import reminders.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ('tasks', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='NotificationSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('phone', models.CharField(blank=True, default='', max_length=32)),
                ('email_notifications', models.BooleanField(default=True)),
                ('sms_notifications', models.BooleanField(default=True)),
                ('reminder_times', models.JSONField(blank=True, default=reminders.models.default_reminder_times)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name_plural': 'notification settings',
            },
        ),
        migrations.CreateModel(
            name='NotificationRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reminder_minutes', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(0)])),
                ('notification_type', models.JSONField(default=list)),
                ('sent_at', models.DateTimeField(auto_now=True)),
                ('task', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notification_records', to='tasks.task')),
            ],
            options={
                'ordering': ['-sent_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='notificationrecord',
            constraint=models.UniqueConstraint(fields=('task', 'reminder_minutes'), name='unique_notification_per_task_lead_time'),
        ),
    ]
