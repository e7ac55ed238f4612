"""
Pagination et filtrage des listes.

Traduit les paramètres bruts d'une requête de liste
(page, limit, search, sortBy, sortOrder, status, autres filtres)
en une RequêtePagination bornée et validée, puis emballe les
résultats dans une Page.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from emballages.domain.exceptions import DonnéesInvalides
from emballages.domain.statuts import Statut, Workflow

PAGE_DÉFAUT = 1
LIMITE_DÉFAUT = 10
LIMITE_MAX = 100
ORDRES = ("asc", "desc")
PARAMÈTRES_RÉSERVÉS = frozenset({"page", "limit", "search", "sortBy", "sortOrder", "status"})


def _entier(valeur: Any, défaut: int, nom: str) -> int:
    if valeur is None or valeur == "":
        return défaut
    try:
        return int(valeur)
    except (TypeError, ValueError):
        raise DonnéesInvalides(f"Paramètre {nom} invalide : {valeur!r}") from None


def _statuts(valeur: Optional[str], workflow: Optional[Workflow]) -> Optional[frozenset[Statut]]:
    """
    `active` = statuts non terminaux, `inactive` = statuts terminaux,
    sinon le libellé exact d'un statut.
    """
    if not valeur or workflow is None:
        return None
    if valeur == "active":
        return workflow.statuts - workflow.terminaux
    if valeur == "inactive":
        return workflow.terminaux
    try:
        return frozenset({Statut(valeur)})
    except ValueError:
        raise DonnéesInvalides(f"Statut inconnu : {valeur}") from None


@dataclass(frozen=True)
class RequêtePagination:
    page: int = PAGE_DÉFAUT
    limit: int = LIMITE_DÉFAUT
    search: str = ""
    tri: str = "createdAt"
    ordre: str = "desc"
    statuts: Optional[frozenset[Statut]] = None
    filtres: Mapping[str, str] = field(default_factory=dict)

    @property
    def décalage(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def depuis_paramètres(
        cls,
        paramètres: Mapping[str, Any],
        champs_tri: Iterable[str],
        tri_défaut: str,
        workflow: Optional[Workflow] = None,
    ) -> RequêtePagination:
        """
        Normalise les paramètres d'une requête de liste.

        `limit` est ramené dans [1, 100] et `page` à au moins 1. Un champ
        de tri hors de `champs_tri` retombe sur `tri_défaut`. Le filtre
        de statut n'est interprété que si un workflow est fourni.
        """
        page = max(PAGE_DÉFAUT, _entier(paramètres.get("page"), PAGE_DÉFAUT, "page"))
        limit = _entier(paramètres.get("limit"), LIMITE_DÉFAUT, "limit")
        limit = min(max(limit, 1), LIMITE_MAX)

        tri = paramètres.get("sortBy") or tri_défaut
        if tri not in set(champs_tri):
            tri = tri_défaut

        ordre = str(paramètres.get("sortOrder") or "desc").lower()
        if ordre not in ORDRES:
            ordre = "desc"

        filtres = {
            clé: str(valeur)
            for clé, valeur in paramètres.items()
            if clé not in PARAMÈTRES_RÉSERVÉS and valeur not in (None, "")
        }

        return cls(
            page=page,
            limit=limit,
            search=str(paramètres.get("search") or "").strip(),
            tri=tri,
            ordre=ordre,
            statuts=_statuts(paramètres.get("status"), workflow),
            filtres=filtres,
        )


@dataclass
class Page:
    données: list
    total: int
    requête: RequêtePagination

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.requête.limit)

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.données,
            "total": self.total,
            "page": self.requête.page,
            "limit": self.requête.limit,
            "totalPages": self.total_pages,
            "hasNextPage": self.requête.page < self.total_pages,
            "hasPreviousPage": self.requête.page > 1,
        }
