from django.contrib.auth.models import AbstractUser
from django.db import models


class Role(models.TextChoices):
    ADMIN = 'ADMIN', 'Admin'
    CLIENT = 'CLIENT', 'Client'
    CPA = 'CPA', 'CPA'
    SERVICE_CENTER = 'SERVICE_CENTER', 'Service Center'


class User(AbstractUser):
    role = models.CharField(max_length=32, choices=Role.choices, default=Role.CLIENT)
    # Only set for CLIENT users: the client account they log in for
    client = models.ForeignKey(
        'onboarding_app.Client', on_delete=models.SET_NULL, null=True, blank=True, related_name='portal_users'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at']
