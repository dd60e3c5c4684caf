from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ObjectDoesNotExist
from django.db import models


class User(AbstractUser):
    """Photographer login. Business details live on the owned studio."""

    display_name = models.CharField(max_length=120, blank=True)

    @property
    def studio_or_none(self):
        try:
            return self.studio
        except ObjectDoesNotExist:
            return None
