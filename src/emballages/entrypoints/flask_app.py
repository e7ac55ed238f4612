"""
Point d'entrée Flask.

L'API Flask est un thin adapter : elle se contente de
convertir les requêtes HTTP en commands, les envoie au
message bus, et convertit les résultats en réponses HTTP.

L'acteur courant est lu dans les en-têtes posés par le middleware
d'authentification (X-Acteur-Id, X-Acteur-Role, X-Entite-Type,
X-Entite-Id). Les erreurs sont renvoyées sous la forme
{statusCode, message}.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import Flask, jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from emballages import config
from emballages.domain import commands, model
from emballages.domain.exceptions import (
    AccèsRefusé,
    Conflit,
    DonnéesInvalides,
    ErreurMétier,
    Introuvable,
    NonAuthentifié,
    TransitionInvalide,
)
from emballages.domain.roles import stratégie_pour
from emballages.domain.statuts import (
    WORKFLOW_COMMANDE,
    WORKFLOW_TRANSFERT,
    Rôle,
    Statut,
    TypeDocument,
)
from emballages.service_layer import bootstrap
from emballages.views import views
from emballages.views.pagination import RequêtePagination

logging.basicConfig(level=config.get_log_level())
logger = logging.getLogger(__name__)

app = Flask(__name__)
bus = bootstrap.bootstrap()

CODES_HTTP: dict[type[ErreurMétier], int] = {
    DonnéesInvalides: 400,
    TransitionInvalide: 400,
    NonAuthentifié: 401,
    AccèsRefusé: 403,
    Introuvable: 404,
    Conflit: 409,
}


def _erreur(code: int, message: str):
    return jsonify({"statusCode": code, "message": message}), code


@app.errorhandler(ErreurMétier)
def erreur_métier(e: ErreurMétier):
    code = next((CODES_HTTP[c] for c in type(e).__mro__ if c in CODES_HTTP), 400)
    return _erreur(code, str(e))


@app.errorhandler(IntegrityError)
def erreur_intégrité(e: IntegrityError):
    logger.warning("Violation de contrainte : %s", e.orig)
    return _erreur(409, "Conflit avec une donnée existante")


@app.errorhandler(Exception)
def erreur_inattendue(e: Exception):
    if isinstance(e, HTTPException):
        return _erreur(e.code, e.description)
    logger.exception("Erreur inattendue sur %s %s", request.method, request.path)
    return _erreur(500, "Erreur interne du serveur")


# --- Lecture de la requête ---


def acteur_courant() -> model.Acteur:
    """Construit l'acteur à partir des en-têtes d'authentification."""
    acteur_id = request.headers.get("X-Acteur-Id")
    rôle = request.headers.get("X-Acteur-Role")
    if not acteur_id or not rôle:
        raise NonAuthentifié("Authentification requise")
    try:
        entité = None
        if request.headers.get("X-Entite-Type"):
            entité = model.réf_entité(
                request.headers["X-Entite-Type"], request.headers.get("X-Entite-Id")
            )
        return model.Acteur(id=acteur_id, rôle=Rôle(rôle), entité=entité)
    except (ValueError, DonnéesInvalides) as e:
        raise NonAuthentifié(f"Contexte d'authentification invalide : {e}") from None


def _corps() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise DonnéesInvalides("Un corps JSON (objet) est attendu")
    return data


def _champ(data: dict[str, Any], clé: str) -> Any:
    if data.get(clé) in (None, ""):
        raise DonnéesInvalides(f"Champ obligatoire manquant : {clé}")
    return data[clé]


def _articles(data: dict[str, Any]) -> tuple[commands.ArticleDemandé, ...]:
    """
    Body : { articles: [{ articleId, quantity, unitPrice }] }
    """
    articles = _champ(data, "articles")
    if not isinstance(articles, list):
        raise DonnéesInvalides("Le champ articles doit être une liste")
    résultat = []
    for article in articles:
        if not isinstance(article, dict):
            raise DonnéesInvalides("Chaque article doit être un objet")
        try:
            prix = Decimal(str(_champ(article, "unitPrice")))
        except InvalidOperation:
            raise DonnéesInvalides(f"Prix unitaire invalide : {article['unitPrice']!r}") from None
        if not prix.is_finite():
            raise DonnéesInvalides(f"Prix unitaire invalide : {article['unitPrice']!r}")
        résultat.append(
            commands.ArticleDemandé(
                article_id=str(_champ(article, "articleId")),
                quantité=_champ(article, "quantity"),
                prix_unitaire=prix,
            )
        )
    return tuple(résultat)


def _statut(data: dict[str, Any]) -> Statut:
    try:
        return Statut(_champ(data, "status"))
    except ValueError:
        raise DonnéesInvalides(f"Statut inconnu : {data['status']}") from None


def _quantités(data: dict[str, Any]) -> dict[str, int] | None:
    quantités = data.get("quantities")
    if quantités is None:
        return None
    if not isinstance(quantités, dict):
        raise DonnéesInvalides("Le champ quantities doit associer un article à une quantité")
    return {str(article): q for article, q in quantités.items()}


def _détails_transition(data: dict[str, Any]) -> dict[str, Any]:
    """Documents et informations d'expédition ou de réception joints au changement de statut."""
    return {
        "document_url": data.get("signedDeliveryNoteUrl") or data.get("deliveryNoteUrl"),
        "transporteur": data.get("carrier"),
        "numéro_suivi": data.get("trackingNumber"),
        "non_conformités": data.get("nonConformities"),
    }


def _site(data: dict[str, Any], acteur: model.Acteur) -> model.RéfEntité:
    """Site désigné par { typeSite, siteId }, ou à défaut celui de l'acteur."""
    if data.get("typeSite") or data.get("siteId"):
        return model.réf_entité(_champ(data, "typeSite"), _champ(data, "siteId"))
    if acteur.entité is None:
        raise DonnéesInvalides("Champs typeSite et siteId obligatoires")
    return acteur.entité


# --- Demandes de transfert ---


@app.route("/demandes-transfert", methods=["POST"])
def créer_demande_endpoint():
    """
    POST /demandes-transfert
    Body JSON : { stationDestinationId?, stationSourceId, articles }

    La station demandeuse est par défaut celle de l'acteur.
    """
    acteur = acteur_courant()
    data = _corps()
    site = stratégie_pour(acteur).site_par_défaut()
    if not data.get("stationDestinationId") and site is not None:
        data["stationDestinationId"] = site.id
    cmd = commands.CréerDemandeTransfert(
        station_destination_id=_champ(data, "stationDestinationId"),
        station_source_id=_champ(data, "stationSourceId"),
        articles=_articles(data),
        acteur=acteur,
    )
    référence = bus.handle(cmd).pop(0)
    return jsonify(views.détail_demande(référence, acteur, bus.uow)), 201


@app.route("/demandes-transfert", methods=["GET"])
def lister_demandes_endpoint():
    acteur = acteur_courant()
    requête = RequêtePagination.depuis_paramètres(
        request.args, views.TRI_DEMANDES, "createdAt", WORKFLOW_TRANSFERT
    )
    return jsonify(views.lister_demandes(requête, acteur, bus.uow).to_dict()), 200


@app.route("/demandes-transfert/statistiques", methods=["GET"])
def statistiques_endpoint():
    return jsonify(views.statistiques_transferts(acteur_courant(), bus.uow)), 200


@app.route("/demandes-transfert/en-attente", methods=["GET"])
def en_attente_endpoint():
    """GET /demandes-transfert/en-attente?limit=N"""
    limite = request.args.get("limit")
    if limite is not None:
        try:
            limite = int(limite)
        except ValueError:
            raise DonnéesInvalides(f"Paramètre limit invalide : {limite!r}") from None
    return jsonify(views.demandes_en_attente(acteur_courant(), bus.uow, limite)), 200


@app.route("/demandes-transfert/<reference>", methods=["GET"])
def détail_demande_endpoint(reference: str):
    return jsonify(views.détail_demande(reference, acteur_courant(), bus.uow)), 200


@app.route("/demandes-transfert/<reference>", methods=["PATCH"])
def changer_statut_demande_endpoint(reference: str):
    """
    PATCH /demandes-transfert/<reference>
    Body JSON : { status, reason?, quantities?, deliveryNoteUrl?, signedDeliveryNoteUrl?,
                  carrier?, trackingNumber?, nonConformities? }
    """
    acteur = acteur_courant()
    data = _corps()
    bus.handle(
        commands.ChangerStatutDemande(
            référence=reference,
            statut=_statut(data),
            acteur=acteur,
            motif=data.get("reason"),
            quantités=_quantités(data),
            **_détails_transition(data),
        )
    )
    return jsonify(views.détail_demande(reference, acteur, bus.uow)), 200


@app.route("/demandes-transfert/<reference>", methods=["PUT"])
def modifier_demande_endpoint(reference: str):
    acteur = acteur_courant()
    bus.handle(
        commands.ModifierDemandeTransfert(
            référence=reference, articles=_articles(_corps()), acteur=acteur
        )
    )
    return jsonify(views.détail_demande(reference, acteur, bus.uow)), 200


@app.route("/demandes-transfert/<reference>", methods=["DELETE"])
def supprimer_demande_endpoint(reference: str):
    bus.handle(commands.SupprimerDemandeTransfert(référence=reference, acteur=acteur_courant()))
    return "", 204


# --- Commandes fournisseurs ---


@app.route("/commandes", methods=["POST"])
def créer_commande_endpoint():
    """
    POST /commandes
    Body JSON : { stationId?, fournisseurId, articles }
    """
    acteur = acteur_courant()
    data = _corps()
    site = stratégie_pour(acteur).site_par_défaut()
    if not data.get("stationId") and site is not None:
        data["stationId"] = site.id
    cmd = commands.CréerCommande(
        station_id=_champ(data, "stationId"),
        fournisseur_id=_champ(data, "fournisseurId"),
        articles=_articles(data),
        acteur=acteur,
    )
    référence = bus.handle(cmd).pop(0)
    return jsonify(views.détail_commande(référence, acteur, bus.uow)), 201


@app.route("/commandes", methods=["GET"])
def lister_commandes_endpoint():
    acteur = acteur_courant()
    requête = RequêtePagination.depuis_paramètres(
        request.args, views.TRI_COMMANDES, "createdAt", WORKFLOW_COMMANDE
    )
    return jsonify(views.lister_commandes(requête, acteur, bus.uow).to_dict()), 200


@app.route("/commandes/<reference>", methods=["GET"])
def détail_commande_endpoint(reference: str):
    return jsonify(views.détail_commande(reference, acteur_courant(), bus.uow)), 200


@app.route("/commandes/<reference>", methods=["PATCH"])
def changer_statut_commande_endpoint(reference: str):
    acteur = acteur_courant()
    data = _corps()
    bus.handle(
        commands.ChangerStatutCommande(
            référence=reference,
            statut=_statut(data),
            acteur=acteur,
            motif=data.get("reason"),
            quantités=_quantités(data),
            **_détails_transition(data),
        )
    )
    return jsonify(views.détail_commande(reference, acteur, bus.uow)), 200


# --- Stocks ---


@app.route("/stocks", methods=["GET"])
def lister_stocks_endpoint():
    acteur = acteur_courant()
    requête = RequêtePagination.depuis_paramètres(request.args, views.TRI_STOCKS, "article")
    return jsonify(views.lister_stocks(requête, acteur, bus.uow).to_dict()), 200


@app.route("/stocks", methods=["POST"])
def créer_stock_endpoint():
    """
    POST /stocks
    Body JSON : { typeSite?, siteId?, articleId, quantity? }
    """
    acteur = acteur_courant()
    data = _corps()
    site = _site(data, acteur)
    article_id = str(_champ(data, "articleId"))
    bus.handle(
        commands.CréerStock(
            site=site, article_id=article_id, quantité=data.get("quantity", 0), acteur=acteur
        )
    )
    return jsonify({"type_site": site.type.value, "site_id": site.id,
                    "article_id": article_id, "quantité": data.get("quantity", 0)}), 201


@app.route("/stocks", methods=["PUT"])
def ajuster_stock_endpoint():
    """
    PUT /stocks
    Body JSON : { typeSite?, siteId?, articleId, quantity }
    """
    acteur = acteur_courant()
    data = _corps()
    site = _site(data, acteur)
    article_id = str(_champ(data, "articleId"))
    quantité = _champ(data, "quantity")
    bus.handle(
        commands.AjusterStock(site=site, article_id=article_id, quantité=quantité, acteur=acteur)
    )
    return jsonify({"type_site": site.type.value, "site_id": site.id,
                    "article_id": article_id, "quantité": quantité}), 200


# --- Permissions ---


@app.route("/permissions", methods=["GET"])
def permissions_endpoint():
    """
    GET /permissions?document=transfert|commande

    Droits, filtres et colonnes proposés à l'acteur courant.
    """
    acteur = acteur_courant()
    try:
        type_document = TypeDocument(request.args.get("document", TypeDocument.TRANSFERT.value))
    except ValueError:
        raise DonnéesInvalides(f"Type de document inconnu : {request.args['document']}") from None
    return jsonify(stratégie_pour(acteur).description(type_document)), 200
