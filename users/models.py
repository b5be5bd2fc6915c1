# proctor_platform/users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models

class User(AbstractUser):
    class Role(models.TextChoices):
        ADMIN = "ADMIN", "Admin"
        STUDENT = "STUDENT", "Student"

    role = models.CharField(max_length=20, choices=Role.choices, default=Role.STUDENT)

    # Institutional id printed on the student card, also accepted at login
    student_id = models.CharField(max_length=50, unique=True, null=True, blank=True)

    @property
    def is_admin_role(self):
        return self.role == self.Role.ADMIN or self.is_superuser

    @property
    def is_student_role(self):
        return self.role == self.Role.STUDENT

    def __str__(self):
        return self.username
