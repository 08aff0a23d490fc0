from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from loguru import logger

from .config import SmtpConfig

BODY_TEMPLATE = """Hola {name},

Gracias por confiar en nosotros. Puedes consultar y descargar tu presupuesto
para {brand} {model} en el siguiente enlace:

{url}

Un saludo.
"""


class Notifier(Protocol):
    def send(self, email: str, name: str, brand: str, model: str, document_url: str) -> bool:
        """Deliver the document link. Returns False on any provider failure."""
        ...


class SmtpNotifier:
    def __init__(self, cfg: SmtpConfig) -> None:
        self.cfg = cfg

    def send(self, email: str, name: str, brand: str, model: str, document_url: str) -> bool:
        if not self.cfg.enabled or not email:
            return False
        try:
            msg = MIMEMultipart()
            msg["From"] = self.cfg.from_email
            msg["To"] = email
            msg["Subject"] = self.cfg.subject.format(brand=brand, model=model)
            body = BODY_TEMPLATE.format(name=name, brand=brand, model=model, url=document_url)
            msg.attach(MIMEText(body, "plain", "utf-8"))

            with smtplib.SMTP(self.cfg.host, self.cfg.port, timeout=20) as server:
                if self.cfg.use_tls:
                    server.starttls()
                if self.cfg.user:
                    server.login(self.cfg.user, self.cfg.password or "")
                server.send_message(msg)

            logger.info(f"quote email sent to {email}")
            return True
        except Exception as e:
            logger.warning(f"quote email to {email} failed: {e}")
            return False


class LogNotifier:
    """Development notifier: logs the message and reports success."""

    def send(self, email: str, name: str, brand: str, model: str, document_url: str) -> bool:
        logger.info(f"[mail] to={email} name={name} product={brand} {model} url={document_url}")
        return True
