from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('approval', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='stageinstance',
            name='warned_at',
            field=models.DateTimeField(blank=True, help_text='When the approaching-deadline warning went out', null=True),
        ),
    ]
