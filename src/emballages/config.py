"""
Configuration lue depuis les variables d'environnement.

Chaque valeur a un défaut utilisable en développement local.
"""

import logging
import os


def get_database_uri() -> str:
    return os.environ.get("EMBALLAGES_DATABASE_URI", "sqlite:///emballages.db")


def get_email_host_and_port() -> dict:
    host = os.environ.get("EMBALLAGES_SMTP_HOST", "localhost")
    port = int(os.environ.get("EMBALLAGES_SMTP_PORT", "587"))
    return dict(host=host, port=port)


def get_notifications_email() -> str:
    """Destinataire des alertes (rejets, stocks négatifs)."""
    return os.environ.get("EMBALLAGES_NOTIFICATIONS_EMAIL", "logistique@example.com")


def get_log_level() -> int:
    nom = os.environ.get("EMBALLAGES_LOG_LEVEL", "INFO").upper()
    niveau = logging.getLevelName(nom)
    if not isinstance(niveau, int):
        raise ValueError(f"Niveau de log inconnu : {nom}")
    return niveau
