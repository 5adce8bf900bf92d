"""Admin configuration for project models."""

from django.contrib import admin

from apps.projects.models import Design, Project, Ticket


class DesignInline(admin.TabularInline):
    model = Design
    extra = 0
    fields = ["title", "status", "phase_count"]


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ["name", "repo_path", "created_at"]
    search_fields = ["name", "repo_path"]
    inlines = [DesignInline]


@admin.register(Design)
class DesignAdmin(admin.ModelAdmin):
    list_display = ["title", "project", "status", "phase_count", "updated_at"]
    list_filter = ["status"]
    search_fields = ["title"]


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ["title", "project", "status", "created_at"]
    list_filter = ["status"]
    search_fields = ["title"]
