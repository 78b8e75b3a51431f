"""
Tests for email templates and SMTP delivery.
"""

from unittest.mock import MagicMock, patch

import pytest
from jinja2 import TemplateNotFound, UndefinedError
from movie_catalog.mailer import Mailer, render


def test_render_welcome_email():
    subject, plain, html = render("user_welcome", {"activation_token": "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "user_id": 7})

    assert subject == "Welcome to Movie Catalog!"
    assert "your user ID number is 7" in plain
    assert '{"token": "ABCDEFGHIJKLMNOPQRSTUVWXYZ"}' in plain
    assert "ABCDEFGHIJKLMNOPQRSTUVWXYZ" in html


def test_render_password_reset_email():
    subject, plain, _ = render("token_password_reset", {"password_reset_token": "ZYXWVUTSRQPONMLKJIHGFEDCBA"})

    assert subject == "Reset your Movie Catalog password"
    assert "ZYXWVUTSRQPONMLKJIHGFEDCBA" in plain
    assert "45 minutes" in plain


def test_render_escapes_html_only():
    """Test values are escaped in the HTML part and left as-is in the plain part."""
    _, plain, html = render("user_welcome", {"activation_token": "<b>x</b>", "user_id": 1})

    assert "&lt;b&gt;x&lt;/b&gt;" in html
    assert "<b>x</b>" not in html
    assert '{"token": "<b>x</b>"}' in plain


def test_render_subject_is_single_line():
    subject, _, _ = render("token_activation", {"activation_token": "A" * 26})

    assert subject == "Activate your Movie Catalog account"


def test_render_unknown_template():
    with pytest.raises(TemplateNotFound):
        render("newsletter", {})


def test_render_missing_value():
    with pytest.raises(UndefinedError):
        render("token_activation", {})


def test_build_message_has_both_parts():
    mailer = Mailer(sender="Movie Catalog <no-reply@movie-catalog.local>")

    message = mailer.build_message("alice@example.com", "token_activation", {"activation_token": "A" * 26})

    assert message["To"] == "alice@example.com"
    assert message["From"] == "Movie Catalog <no-reply@movie-catalog.local>"
    assert message["Subject"] == "Activate your Movie Catalog account"
    assert message.is_multipart()
    content_types = [part.get_content_type() for part in message.iter_parts()]
    assert content_types == ["text/plain", "text/html"]


def test_send_without_credentials():
    """Test delivery to an open relay skips STARTTLS and login."""
    mailer = Mailer(host="smtp.example.com", port=25, username="", password="")

    with patch("movie_catalog.mailer.smtplib.SMTP") as smtp_class:
        smtp = smtp_class.return_value.__enter__.return_value
        mailer.send("alice@example.com", "token_activation", {"activation_token": "A" * 26})

    smtp_class.assert_called_once_with("smtp.example.com", 25, timeout=mailer.timeout)
    smtp.starttls.assert_not_called()
    smtp.login.assert_not_called()
    smtp.send_message.assert_called_once()


def test_send_with_credentials():
    mailer = Mailer(host="smtp.example.com", port=587, username="mailer", password="secret")

    with patch("movie_catalog.mailer.smtplib.SMTP") as smtp_class:
        smtp = smtp_class.return_value.__enter__.return_value
        mailer.send("alice@example.com", "token_activation", {"activation_token": "A" * 26})

    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("mailer", "secret")
    sent = smtp.send_message.call_args.args[0]
    assert sent["To"] == "alice@example.com"


@pytest.mark.asyncio
async def test_send_async_propagates_errors():
    """Test SMTP failures surface to the caller (the background tracker logs them)."""
    mailer = Mailer()
    failing = MagicMock(side_effect=ConnectionRefusedError("connection refused"))

    with patch.object(mailer, "send", failing):
        with pytest.raises(ConnectionRefusedError):
            await mailer.send_async("alice@example.com", "token_activation", {"activation_token": "A" * 26})

    failing.assert_called_once_with("alice@example.com", "token_activation", {"activation_token": "A" * 26})
