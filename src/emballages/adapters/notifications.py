"""
Adapter pour les notifications.

Ce module fournit une abstraction sur l'envoi de notifications
(emails, SMS, etc.), permettant de découpler le domaine
du mécanisme de notification concret.
"""

from __future__ import annotations

import abc
import smtplib

from emballages import config


class AbstractNotifications(abc.ABC):
    """Interface abstraite pour les notifications."""

    @abc.abstractmethod
    def send(self, destination: str, message: str) -> None:
        raise NotImplementedError


class EmailNotifications(AbstractNotifications):
    """Implémentation concrète envoyant des emails via SMTP."""

    def __init__(self, smtp_host: str | None = None, smtp_port: int | None = None):
        défauts = config.get_email_host_and_port()
        self.smtp_host = smtp_host or défauts["host"]
        self.smtp_port = smtp_port or défauts["port"]

    def send(self, destination: str, message: str) -> None:
        msg = f"Subject: Gestion des emballages\n\n{message}"
        with smtplib.SMTP(self.smtp_host, self.smtp_port) as smtp:
            smtp.sendmail(
                from_addr="emballages@example.com",
                to_addrs=[destination],
                msg=msg.encode("utf-8"),
            )
