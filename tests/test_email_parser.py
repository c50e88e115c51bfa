"""Unit tests for the notification email parser."""

import pytest

from conftest import EMAILS_DIR, TRUSTED_HOST, read_email
from gitgov.email_parser import (
    EmailTemplate,
    classify_heading,
    parse_email,
    parse_email_html,
)
from gitgov.errors import MalformedEmail, UnknownEmailFormat, UntrustedSource
from gitgov.models import ChangeEvent
from gitgov.utils import url_host


def single_update_html(*paragraphs: str) -> str:
    return "<html><body>" + "".join(f"<p>{p}</p>" for p in paragraphs) + "</body></html>"


LINK = '<a href="https://www.gov.uk/guidance/some-page?utm_source=x">Some page</a>'


class TestSingleUpdate:
    """Tests for the one-document template."""

    def test_parses_eml_fixture(self):
        updates = parse_email(read_email("single-update.eml"), TRUSTED_HOST)

        assert updates == [
            ChangeEvent(
                change="Updated Germany Doctors List – December 2020",
                updated_at="12:13pm, 9 December 2020",
                url="https://www.gov.uk/government/publications/germany-list-of-medical-practitionersfacilities",
            )
        ]

    def test_parses_html_body(self):
        html = (EMAILS_DIR / "new-email-format.html").read_text(encoding="utf-8")

        updates = parse_email_html(html, TRUSTED_HOST)

        assert updates == [
            ChangeEvent(
                change="Forms EC3163 and EC3164 updated",
                updated_at="10:35am, 10 July 2019",
                url="https://www.gov.uk/guidance/export-live-animals-special-rules",
            )
        ]

    def test_accepts_str_input(self):
        raw = read_email("single-update.eml").decode("utf-8")

        assert len(parse_email(raw, TRUSTED_HOST)) == 1

    def test_untrusted_link_rejected(self):
        html = single_update_html(
            "Update on GOV.UK.",
            '<a href="https://www.gov.uk.evil.example/page">Page</a>',
            "Summary",
            "<strong>Change made:</strong><br>Something",
            "<strong>Time updated:</strong><br>1:00pm, 1 May 2021",
        )

        with pytest.raises(UntrustedSource) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.url == "https://www.gov.uk.evil.example/page"

    def test_missing_timestamp_paragraph(self):
        html = single_update_html(
            "Update on GOV.UK.", LINK, "Summary", "<strong>Change made:</strong><br>Something"
        )

        with pytest.raises(MalformedEmail) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.field == "timestamp"

    def test_change_paragraph_without_value(self):
        html = single_update_html(
            "Update on GOV.UK.",
            LINK,
            "Summary",
            "<strong>Change made:</strong>",
            "<strong>Time updated:</strong><br>1:00pm, 1 May 2021",
        )

        with pytest.raises(MalformedEmail) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.field == "change description"

    def test_unparseable_link(self):
        html = single_update_html(
            "Update on GOV.UK.",
            '<a href="https://[www.gov.uk/x">Page</a>',
            "Summary",
            "<strong>Change made:</strong><br>Something",
            "<strong>Time updated:</strong><br>1:00pm, 1 May 2021",
        )

        with pytest.raises(MalformedEmail) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.field == "document link"

    def test_title_without_link(self):
        html = single_update_html("Update on GOV.UK.", "Some page", "Summary")

        with pytest.raises(MalformedEmail) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.field == "document link"


class TestDigest:
    """Tests for the daily digest template."""

    def test_sixty_sections(self):
        updates = parse_email(read_email("daily-digest.eml"), TRUSTED_HOST)

        assert len(updates) == 60
        assert all(update.category == "Brexit" for update in updates)
        assert all(url_host(update.url) == TRUSTED_HOST for update in updates)
        assert updates[0] == ChangeEvent(
            url="https://www.gov.uk/government/collections/brexit-guidance",
            change="Added guidance for hauliers moving goods",
            updated_at="9:15am, 1 March 2021",
            category="Brexit",
        )

    def test_strips_tracking_from_every_url(self):
        updates = parse_email(read_email("daily-digest.eml"), TRUSTED_HOST)

        assert updates[-1].url == "https://www.gov.uk/guidance/brexit-topic-60"
        assert not any("?" in u.url or "#" in u.url for u in updates)

    def test_boilerplate_section_skipped(self):
        updates = parse_email(read_email("daily-digest.eml"), TRUSTED_HOST)

        assert "https://www.gov.uk/email/manage" not in {u.url for u in updates}

    def test_section_missing_timestamp(self):
        html = (
            "<p>Daily update from GOV.UK for:</p><h1>Brexit</h1><hr>"
            f"<h2>{LINK}</h2><p>Summary</p><p><b>Change made:</b> Edited</p><hr>"
        )

        with pytest.raises(MalformedEmail) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.field == "timestamp"

    def test_section_without_link(self):
        html = "<p>Daily update from GOV.UK for:</p><h1>Brexit</h1><h2>No link here</h2>"

        with pytest.raises(MalformedEmail) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.field == "document link"

    def test_missing_category(self):
        html = (
            f"<p>Weekly update from GOV.UK for:</p><h2>{LINK}</h2>"
            "<p>Summary</p><p><b>Change made:</b> Edited</p><p><b>Time updated:</b> 1pm</p>"
        )

        with pytest.raises(MalformedEmail) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.field == "category"

    def test_digest_without_sections(self):
        html = "<p>Daily update from GOV.UK for:</p><h1>Brexit</h1>"

        with pytest.raises(MalformedEmail):
            parse_email_html(html, TRUSTED_HOST)


class TestTemplates:
    """Tests for heading classification and MIME handling."""

    def test_informational_email_has_no_changes(self):
        assert parse_email(read_email("link-expires.eml"), TRUSTED_HOST) == []

    def test_unknown_heading_is_an_error(self):
        html = single_update_html("Your weekly newsletter", LINK)

        with pytest.raises(UnknownEmailFormat) as exc_info:
            parse_email_html(html, TRUSTED_HOST)

        assert exc_info.value.heading == "Your weekly newsletter"

    def test_heading_with_zero_width_space(self):
        assert classify_heading("Update on GOV.\u200bUK.") is EmailTemplate.SINGLE_UPDATE
        assert classify_heading(" Daily update from GOV.UK  for: ") is EmailTemplate.DIGEST
        assert classify_heading("This link will expire in 7 days") is EmailTemplate.INFORMATIONAL

    def test_missing_html_part(self):
        with pytest.raises(MalformedEmail) as exc_info:
            parse_email(read_email("plain-only.eml"), TRUSTED_HOST)

        assert exc_info.value.field == "text/html part"

    def test_undecodable_html_part(self):
        raw = (
            b"From: test@gov.uk\r\nMIME-Version: 1.0\r\n"
            b"Content-Type: text/html; charset=x-no-such-charset\r\n\r\n"
            b"<p>Update on GOV.UK.</p>\r\n"
        )

        with pytest.raises(MalformedEmail) as exc_info:
            parse_email(raw, TRUSTED_HOST)

        assert exc_info.value.field == "text/html part"

    def test_body_without_paragraphs(self):
        with pytest.raises(MalformedEmail) as exc_info:
            parse_email_html("<html><body><h1>Hi</h1></body></html>", TRUSTED_HOST)

        assert exc_info.value.field == "heading"
