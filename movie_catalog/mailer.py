"""Transactional email over SMTP.

Each template file under ``templates/`` defines ``subject``, ``plain_body``
and ``html_body`` blocks rendered from a dict of values. Sending blocks, so
async callers go through ``send_async``.
"""

import asyncio
import smtplib
from email.message import EmailMessage

from jinja2 import Environment, PackageLoader, StrictUndefined

from .config import settings
from .logger import logger

# ==================== Templates ====================

templates = Environment(
    loader=PackageLoader("movie_catalog", "templates"),
    autoescape=True,
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render(template_name: str, data: dict) -> tuple[str, str, str]:
    """Render (subject, plain, html) from ``<template_name>.tmpl``.

    Raises ``jinja2.TemplateNotFound`` for an unknown template and
    ``jinja2.UndefinedError`` for a missing value.
    """
    template = templates.get_template(f"{template_name}.tmpl")
    context = template.new_context(data)

    def block(name: str) -> str:
        return "".join(template.blocks[name](context))

    return block("subject").strip(), block("plain_body"), block("html_body")

# ==================== SMTP Mailer ====================


class Mailer:
    """Sends templated emails through the configured SMTP relay."""

    def __init__(
        self,
        host: str = settings.SMTP_HOST,
        port: int = settings.SMTP_PORT,
        username: str = settings.SMTP_USERNAME,
        password: str = settings.SMTP_PASSWORD,
        sender: str = settings.SMTP_SENDER,
        timeout: int = settings.SMTP_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def build_message(self, recipient: str, template_name: str, data: dict) -> EmailMessage:
        subject, plain, html = render(template_name, data)
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = recipient
        message.set_content(plain)
        message.add_alternative(html, subtype="html")
        return message

    def send(self, recipient: str, template_name: str, data: dict) -> None:
        """Render and deliver one email. SMTP and socket errors propagate."""
        message = self.build_message(recipient, template_name, data)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.username:
                smtp.starttls()
                smtp.login(self.username, self.password)
            smtp.send_message(message)
        logger.info(
            "email sent",
            extra={"properties": {"template": template_name, "recipient": recipient}},
        )

    async def send_async(self, recipient: str, template_name: str, data: dict) -> None:
        await asyncio.to_thread(self.send, recipient, template_name, data)
