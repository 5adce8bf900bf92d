"""Admin app configuration: installs ConsoleAdminSite as the default admin.site."""

from django.contrib.admin.apps import AdminConfig


class ConsoleAdminConfig(AdminConfig):
    default_site = "config.admin.ConsoleAdminSite"
