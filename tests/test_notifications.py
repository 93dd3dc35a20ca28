"""
Tests for email rendering and the new-comment notification.
"""

import pytest

from comment_gateway.services.notifications import (
    NOTIFICATION_SUBJECT_TEMPLATE,
    EmailTemplates,
    NotificationDispatcher,
    build_sender,
    finalize_message,
)

from conftest import FakeMailAgent


@pytest.fixture
def dispatcher(settings, mail_agent):
    return NotificationDispatcher(settings, mail_agent)


OPTIONS = {"origin": "https://blog.example.com/post-1", "parentName": "First post"}


class TestEmailTemplates:
    def test_missing_template_uses_default(self, tmp_path):
        templates = EmailTemplates(tmp_path)
        assert templates.render_or_default("nope.txt", {}, lambda: "fallback") == "fallback"

    def test_blank_template_uses_default(self, tmp_path):
        (tmp_path / NOTIFICATION_SUBJECT_TEMPLATE).write_text("   \n")
        templates = EmailTemplates(tmp_path)
        assert templates.render_or_default(NOTIFICATION_SUBJECT_TEMPLATE, {}, lambda: "fallback") == "fallback"

    def test_blank_render_uses_default(self, tmp_path):
        (tmp_path / "subject.txt").write_text("{{ missing }}")
        templates = EmailTemplates(tmp_path)
        assert templates.render_or_default("subject.txt", {}, lambda: "fallback") == "fallback"

    def test_broken_template_uses_default(self, tmp_path):
        (tmp_path / "subject.txt").write_text("{% if %}")
        templates = EmailTemplates(tmp_path)
        assert templates.render_or_default("subject.txt", {}, lambda: "fallback") == "fallback"

    def test_html_is_escaped(self, tmp_path):
        (tmp_path / "content.html").write_text("<p>{{ fields.name }}</p>")
        templates = EmailTemplates(tmp_path)
        rendered = templates.render("content.html", {"fields": {"name": "<script>"}})
        assert rendered == "<p>&lt;script&gt;</p>"


class TestFinalizeMessage:
    def test_production_is_untagged(self, settings):
        payload = finalize_message(settings, {"from": build_sender(settings), "subject": "Hi"})
        assert payload["from"] == "Example Comments <noreply@example.com>"
        assert payload["subject"] == "Hi"
        assert payload["h:Reply-To"] == payload["from"]

    def test_other_environments_are_tagged(self, settings):
        dev = settings.model_copy(update={"exe_env": "dev"})
        payload = finalize_message(dev, {"from": build_sender(dev), "subject": "Hi"})
        assert payload["from"] == "dev - Example Comments <noreply@example.com>"
        assert payload["subject"] == "dev - Hi"
        assert payload["h:Reply-To"] == payload["from"]

    def test_production_tag_is_hidden(self, settings):
        prod = settings.model_copy(update={"exe_env": "prod"})
        payload = finalize_message(prod, {"from": build_sender(prod), "subject": "Hi"})
        assert payload["subject"] == "Hi"


class TestNotificationDispatcher:
    async def test_renders_bundled_templates(self, dispatcher, mail_agent):
        await dispatcher.send(
            "list@mail.example.com",
            {"name": "John"},
            {"name": "John", "_id": "abc"},
            OPTIONS,
            {"siteName": "Example Blog"},
        )

        message = mail_agent.sent[0]
        assert message["to"] == "list@mail.example.com"
        assert message["subject"] == "New comment on Example Blog: First post"
        assert "https://blog.example.com/post-1" in message["html"]
        assert "Posted by John." in message["html"]
        assert "%mailing_list_unsubscribe_url%" in message["html"]

    async def test_defaults_without_templates(self, settings, tmp_path):
        mail_agent = FakeMailAgent()
        dispatcher = NotificationDispatcher(
            settings.model_copy(update={"email_template_dir": tmp_path}), mail_agent
        )

        await dispatcher.send("list@mail.example.com", {}, {}, OPTIONS, {"siteName": "Example Blog"})

        message = mail_agent.sent[0]
        assert message["subject"] == "There is a new comment at Example Blog"
        assert '<a href="https://blog.example.com/post-1">' in message["html"]

    async def test_transport_failure_propagates(self, dispatcher, mail_agent):
        from comment_gateway.integrations import MailAgentError

        mail_agent.fail_send = True
        with pytest.raises(MailAgentError):
            await dispatcher.send("list@mail.example.com", {}, {}, OPTIONS, {"siteName": "Example Blog"})
