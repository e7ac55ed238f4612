"""
Views (lecture) pour le pattern CQRS.

Les listes et les statistiques interrogent directement les tables,
sans charger d'agrégat : la portée du rôle est appliquée dans la
requête SQL, puis revérifiée par la stratégie (transformer_liste).

Le détail d'un document passe par le repository, car les actions
proposées à l'acteur dépendent du workflow du document.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Select, Table, asc, desc, false, func, or_, select

from emballages.adapters import orm
from emballages.domain import model
from emballages.domain.exceptions import DonnéesInvalides, Introuvable
from emballages.domain.roles import StratégieRôle, stratégie_pour
from emballages.domain.statuts import WORKFLOW_TRANSFERT, Statut
from emballages.service_layer import unit_of_work
from emballages.views.pagination import Page, RequêtePagination

# Noms de colonnes SQL -> clés exposées.
CLÉS = {
    "reference": "référence",
    "cree_par": "créé_par",
    "cree_le": "créé_le",
    "date_expedition": "date_expédition",
    "bon_livraison_emarge_url": "bon_livraison_émargé_url",
    "date_reception": "date_réception",
    "numero_suivi": "numéro_suivi",
    "non_conformites": "non_conformités",
    "numero_version": "numéro_version",
    "quantite": "quantité",
}

TRI_DEMANDES = {
    "createdAt": orm.demandes_transfert.c.cree_le,
    "reference": orm.demandes_transfert.c.reference,
    "status": orm.demandes_transfert.c.statut,
    "totalAmount": orm.demandes_transfert.c.montant_total,
}

TRI_COMMANDES = {
    "createdAt": orm.commandes.c.cree_le,
    "reference": orm.commandes.c.reference,
    "status": orm.commandes.c.statut,
    "totalAmount": orm.commandes.c.montant_total,
}

TRI_STOCKS = {
    "article": orm.stocks.c.article_id,
    "site": orm.stocks.c.site_id,
    "quantity": orm.stocks.c.quantite,
}

FILTRES_DEMANDES = {
    "stationDestination": orm.demandes_transfert.c.station_destination_id,
    "stationSource": orm.demandes_transfert.c.station_source_id,
}

FILTRES_COMMANDES = {
    "station": orm.commandes.c.station_id,
    "fournisseur": orm.commandes.c.fournisseur_id,
}


def _valeur(valeur: Any) -> Any:
    if isinstance(valeur, enum.Enum):
        return valeur.value
    if isinstance(valeur, Decimal):
        return float(valeur)
    if isinstance(valeur, datetime):
        return valeur.isoformat()
    return valeur


def _ligne_vers_dict(row: Any) -> dict[str, Any]:
    return {
        CLÉS.get(nom, nom): _valeur(valeur)
        for nom, valeur in row._mapping.items()
        if nom != "id"
    }


def _portée(requête: Select, table: Table, stratégie: StratégieRôle) -> Select:
    """Restreint la requête aux lignes dont l'acteur est partie prenante."""
    clés = stratégie.clés_portée()
    if clés is None:
        return requête
    colonnes = [table.c[clé] for clé in clés if clé in table.c]
    if not colonnes:
        return requête.where(false())
    entité_id = stratégie.acteur.entité.id
    return requête.where(or_(*(colonne == entité_id for colonne in colonnes)))


def _paginer(
    uow: unit_of_work.AbstractUnitOfWork,
    requête_sql: Select,
    tri: Any,
    requête: RequêtePagination,
) -> tuple[list[dict[str, Any]], int]:
    total = uow.session.execute(
        select(func.count()).select_from(requête_sql.subquery())
    ).scalar_one()
    ordre = asc if requête.ordre == "asc" else desc
    rows = uow.session.execute(
        requête_sql.order_by(ordre(tri)).offset(requête.décalage).limit(requête.limit)
    )
    return [_ligne_vers_dict(r) for r in rows], total


def _lister_documents(
    table: Table,
    tris: dict,
    filtres: dict,
    recherche: tuple,
    requête: RequêtePagination,
    acteur: model.Acteur,
    uow: unit_of_work.AbstractUnitOfWork,
) -> Page:
    stratégie = stratégie_pour(acteur)
    requête_sql = _portée(select(table), table, stratégie)
    if requête.statuts is not None:
        requête_sql = requête_sql.where(table.c.statut.in_(sorted(requête.statuts)))
    if requête.search:
        motif = f"%{requête.search}%"
        requête_sql = requête_sql.where(or_(*(c.ilike(motif) for c in recherche)))
    for clé, colonne in filtres.items():
        if clé in requête.filtres:
            requête_sql = requête_sql.where(colonne == requête.filtres[clé])
    with uow:
        données, total = _paginer(uow, requête_sql, tris[requête.tri], requête)
    return Page(stratégie.transformer_liste(données), total, requête)


def lister_demandes(
    requête: RequêtePagination,
    acteur: model.Acteur,
    uow: unit_of_work.AbstractUnitOfWork,
) -> Page:
    table = orm.demandes_transfert
    return _lister_documents(
        table,
        TRI_DEMANDES,
        FILTRES_DEMANDES,
        (table.c.reference, table.c.station_destination_id, table.c.station_source_id),
        requête,
        acteur,
        uow,
    )


def lister_commandes(
    requête: RequêtePagination,
    acteur: model.Acteur,
    uow: unit_of_work.AbstractUnitOfWork,
) -> Page:
    table = orm.commandes
    return _lister_documents(
        table,
        TRI_COMMANDES,
        FILTRES_COMMANDES,
        (table.c.reference, table.c.station_id, table.c.fournisseur_id),
        requête,
        acteur,
        uow,
    )


def lister_stocks(
    requête: RequêtePagination,
    acteur: model.Acteur,
    uow: unit_of_work.AbstractUnitOfWork,
) -> Page:
    """
    Stocks visibles par l'acteur : les siens pour une station ou un
    fournisseur, tous pour l'administration (filtrables par site).
    """
    table = orm.stocks
    requête_sql = select(table)
    if acteur.entité is not None:
        requête_sql = requête_sql.where(
            table.c.type_site == acteur.entité.type,
            table.c.site_id == acteur.entité.id,
        )
    if "typeSite" in requête.filtres:
        try:
            type_site = model.TypeEntité(requête.filtres["typeSite"])
        except ValueError:
            raise DonnéesInvalides(f"Type de site inconnu : {requête.filtres['typeSite']}") from None
        requête_sql = requête_sql.where(table.c.type_site == type_site)
    if "siteId" in requête.filtres:
        requête_sql = requête_sql.where(table.c.site_id == requête.filtres["siteId"])
    if requête.search:
        requête_sql = requête_sql.where(table.c.article_id.ilike(f"%{requête.search}%"))
    with uow:
        données, total = _paginer(uow, requête_sql, TRI_STOCKS[requête.tri], requête)
    return Page(données, total, requête)


# --- Détail ---


def vue_document(document: model.DocumentWorkflow, stratégie: StratégieRôle) -> dict[str, Any]:
    """Représentation d'un document, avec les actions ouvertes à l'acteur."""
    vue: dict[str, Any] = {
        "référence": document.référence,
        "type_document": document.type_document.value,
        "statut": document.statut.value,
    }
    if isinstance(document, model.DemandeTransfert):
        vue["station_destination_id"] = document.station_destination_id
        vue["station_source_id"] = document.station_source_id
    else:
        vue["station_id"] = document.station_id
        vue["fournisseur_id"] = document.fournisseur_id
    vue.update(
        montant_total=float(document.montant_total),
        créé_par=document.créé_par,
        créé_le=_valeur(document.créé_le),
        motif_rejet=document.motif_rejet,
        bon_livraison_url=document.bon_livraison_url,
        date_expédition=_valeur(document.date_expédition),
        transporteur=document.transporteur,
        numéro_suivi=document.numéro_suivi,
        bon_livraison_émargé_url=document.bon_livraison_émargé_url,
        date_réception=_valeur(document.date_réception),
        non_conformités=document.non_conformités,
        numéro_version=document.numéro_version,
        lignes=[
            {
                "article_id": ligne.article_id,
                "quantité_demandée": ligne.quantité_demandée,
                "quantité_accordée": ligne.quantité_accordée,
                "quantité_livrée": ligne.quantité_livrée,
                "prix_unitaire": float(ligne.prix_unitaire),
                "montant": float(ligne.montant.quantize(model.CENTIME)),
            }
            for ligne in document.lignes
        ],
        historique=[
            {
                "statut": étape.statut.value,
                "date": _valeur(étape.date),
                "par_acteur_id": étape.par_acteur_id,
            }
            for étape in document.historique
        ],
        actions=[s.value for s in stratégie.actions_disponibles(document)],
    )
    return vue


def _détail(repo: Any, référence: str, acteur: model.Acteur) -> dict[str, Any]:
    stratégie = stratégie_pour(acteur)
    document = repo.get(référence)
    if document is None:
        raise Introuvable(f"Document introuvable : {référence}")
    vue = vue_document(document, stratégie)
    # Hors de la portée de l'acteur : le document n'existe pas pour lui.
    if not stratégie.concerne(vue):
        raise Introuvable(f"Document introuvable : {référence}")
    return vue


def détail_demande(
    référence: str,
    acteur: model.Acteur,
    uow: unit_of_work.AbstractUnitOfWork,
) -> dict[str, Any]:
    with uow:
        return _détail(uow.demandes, référence, acteur)


def détail_commande(
    référence: str,
    acteur: model.Acteur,
    uow: unit_of_work.AbstractUnitOfWork,
) -> dict[str, Any]:
    with uow:
        return _détail(uow.commandes, référence, acteur)


# --- Tableaux de bord ---


def statistiques_transferts(
    acteur: model.Acteur,
    uow: unit_of_work.AbstractUnitOfWork,
) -> dict[str, Any]:
    """Nombre de demandes visibles par statut."""
    table = orm.demandes_transfert
    requête_sql = _portée(
        select(table.c.statut, func.count().label("nombre")),
        table,
        stratégie_pour(acteur),
    ).group_by(table.c.statut)
    par_statut = {s.value: 0 for s in Statut if s in WORKFLOW_TRANSFERT.statuts}
    with uow:
        for statut, nombre in uow.session.execute(requête_sql):
            par_statut[statut.value] = nombre
    return {"total": sum(par_statut.values()), "par_statut": par_statut}


def demandes_en_attente(
    acteur: model.Acteur,
    uow: unit_of_work.AbstractUnitOfWork,
    limite: Optional[int] = None,
) -> list[dict[str, Any]]:
    """
    Demandes enregistrées qui attendent la décision de la station source,
    les plus anciennes d'abord. Une station ne voit que celles qui la
    sollicitent ; un fournisseur n'en a aucune.
    """
    table = orm.demandes_transfert
    clés = stratégie_pour(acteur).clés_en_attente()
    if clés == ():
        return []
    requête_sql = select(table).where(table.c.statut == Statut.ENREGISTREE)
    if clés is not None:
        requête_sql = requête_sql.where(or_(*(table.c[clé] == acteur.entité.id for clé in clés)))
    requête_sql = requête_sql.order_by(table.c.cree_le.asc(), table.c.id.asc())
    if limite is not None:
        requête_sql = requête_sql.limit(limite)
    with uow:
        return [_ligne_vers_dict(r) for r in uow.session.execute(requête_sql)]


