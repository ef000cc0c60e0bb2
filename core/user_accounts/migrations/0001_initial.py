from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='CustomUser',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('email', models.EmailField(db_index=True, max_length=254, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('role', models.CharField(
                    choices=[
                        ('viewer', 'Viewer'),
                        ('creator', 'Creator'),
                        ('reviewer', 'Reviewer'),
                        ('approver', 'Approver'),
                        ('publisher', 'Publisher'),
                        ('admin', 'Admin'),
                    ],
                    db_index=True,
                    default='viewer',
                    help_text='Role used for approval permissions and stage assignment',
                    max_length=20,
                )),
                ('is_active', models.BooleanField(default=True)),
                ('is_staff', models.BooleanField(default=False, help_text='Can log into the Django admin site')),
                ('date_joined', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'User',
                'verbose_name_plural': 'Users',
                'db_table': 'custom_users',
            },
        ),
    ]
