import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('LOGIN', 'Login'), ('ENTER_EXAM', 'Exam Entered'), ('SUBMIT_ATTEMPT', 'Attempt Submitted'), ('AUTO_SUBMIT', 'Attempt Auto-Submitted'), ('CHEAT_VIOLATION', 'Cheat Violation'), ('ADMIN_UNLOCK_ATTEMPT', 'Attempt Unlocked'), ('ADMIN_TERMINATE_ATTEMPT', 'Attempt Terminated'), ('ADMIN_RESET_ATTEMPT', 'Attempt Reset'), ('UPDATE_ANSWER_KEY', 'Answer Key Changed'), ('REGENERATE_RESULTS', 'Results Regenerated'), ('MANUAL_GRADE', 'Manual Grade'), ('PUBLISH_RESULTS', 'Results Published'), ('HIDE_RESULTS', 'Results Hidden')], max_length=40)),
                ('exam_id', models.BigIntegerField(blank=True, db_index=True, null=True)),
                ('attempt_id', models.BigIntegerField(blank=True, db_index=True, null=True)),
                ('target_user_id', models.BigIntegerField(blank=True, null=True)),
                ('meta', models.JSONField(blank=True, default=dict)),
                ('timestamp', models.DateTimeField(auto_now_add=True)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-timestamp', '-id'],
            },
        ),
    ]
