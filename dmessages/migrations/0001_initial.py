import uuid

import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sender_id', models.CharField(max_length=100)),
                ('receiver_id', models.CharField(max_length=100)),
                ('content', models.TextField()),
                ('conversation_id', models.CharField(db_index=True, max_length=100)),
                ('item_id', models.CharField(blank=True, max_length=100, null=True)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('read', models.BooleanField(default=False)),
            ],
            options={
                'db_table': 'messages',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['sender_id', 'receiver_id'], name='messages_pair_idx'),
                    models.Index(fields=['receiver_id', 'read'], name='messages_unread_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('sender_id', models.F('receiver_id')), _negated=True),
                        name='messages_no_self_message',
                    ),
                ],
            },
        ),
    ]
