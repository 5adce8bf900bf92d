"""
Models for projects, designs and tickets.

These are the launch-side references of an orchestration. The control plane
only reads them (ownership checks during launch).
"""

from django.db import models


class Project(models.Model):
    """A code repository the console orchestrates work against."""

    name = models.CharField(max_length=255, unique=True)
    repo_path = models.CharField(
        max_length=1024,
        blank=True,
        default="",
        help_text="Working directory handed to the worker node on launch.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Design(models.Model):
    """A design document an orchestration implements."""

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="designs",
    )
    title = models.CharField(max_length=255)
    status = models.CharField(max_length=50, default="draft")
    phase_count = models.PositiveIntegerField(
        default=1,
        help_text="Number of phases an orchestration of this design runs.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]

    def __str__(self):
        return f"{self.title} ({self.project.name})"


class Ticket(models.Model):
    """A unit of planned work attached to a project."""

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="tickets",
    )
    title = models.CharField(max_length=255)
    status = models.CharField(max_length=50, default="todo")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.title
