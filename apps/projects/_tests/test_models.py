from django.test import TestCase

from apps.projects.models import Design, Project, Ticket


class ProjectModelTests(TestCase):
    def test_str(self):
        project = Project.objects.create(name="console", repo_path="/srv/console")
        design = Design.objects.create(project=project, title="Auth rework", phase_count=4)
        ticket = Ticket.objects.create(project=project, title="Add login")

        assert str(project) == "console"
        assert str(design) == "Auth rework (console)"
        assert str(ticket) == "Add login"

    def test_design_defaults(self):
        project = Project.objects.create(name="console")
        design = Design.objects.create(project=project, title="Draft")
        assert design.phase_count == 1
        assert design.status == "draft"
        assert list(project.designs.all()) == [design]
