"""
Tests d'intégration des views (côté lecture) sur SQLite en mémoire.

Les données sont créées via le message bus, puis relues par les views
avec la portée de chaque rôle.
"""

from decimal import Decimal

import pytest

from emballages.adapters import notifications
from emballages.domain import commands
from emballages.domain.exceptions import Introuvable
from emballages.domain.model import Acteur, RéfFournisseur, RéfStation
from emballages.domain.statuts import WORKFLOW_TRANSFERT, Rôle, Statut
from emballages.service_layer import bootstrap, unit_of_work
from emballages.views import views
from emballages.views.pagination import RequêtePagination

MANAGER = Acteur("u-manager", Rôle.MANAGER)
STATION_A = Acteur("u-a", Rôle.STATION, RéfStation("A"))
STATION_B = Acteur("u-b", Rôle.STATION, RéfStation("B"))
STATION_C = Acteur("u-c", Rôle.STATION, RéfStation("C"))
FOURNISSEUR_F = Acteur("u-f", Rôle.FOURNISSEUR, RéfFournisseur("F"))


class FakeNotifications(notifications.AbstractNotifications):
    def send(self, destination: str, message: str) -> None:
        pass


@pytest.fixture
def bus(sqlite_session_factory):
    uow = unit_of_work.SqlAlchemyUnitOfWork(sqlite_session_factory)
    return bootstrap.bootstrap(
        start_orm=False, uow=uow, notifications_adapter=FakeNotifications()
    )


def créer_demande(bus, acteur, destination, source) -> str:
    return bus.handle(
        commands.CréerDemandeTransfert(
            destination, source,
            (commands.ArticleDemandé("ART-1", 10, Decimal("2.00")),),
            acteur,
        )
    )[0]


def requête(**paramètres):
    return RequêtePagination.depuis_paramètres(
        paramètres, views.TRI_DEMANDES, "createdAt", WORKFLOW_TRANSFERT
    )


class TestListerDemandes:
    def test_portée_de_la_station(self, bus):
        créer_demande(bus, STATION_A, "A", "B")
        créer_demande(bus, STATION_B, "B", "C")
        créer_demande(bus, STATION_C, "C", "B")

        page = views.lister_demandes(requête(), STATION_A, bus.uow)

        assert page.total == 1
        assert page.données[0]["station_destination_id"] == "A"
        assert page.données[0]["montant_total"] == 20.0
        assert page.données[0]["statut"] == "Enregistrée"

    def test_le_manager_voit_tout_et_pagine(self, bus):
        for _ in range(3):
            créer_demande(bus, STATION_A, "A", "B")

        page = views.lister_demandes(requête(limit=2, sortBy="reference", sortOrder="asc"), MANAGER, bus.uow)

        assert page.total == 3
        assert [d["référence"] for d in page.données] == sorted(d["référence"] for d in page.données)
        assert page.to_dict()["hasNextPage"]

    def test_un_fournisseur_ne_voit_aucun_transfert(self, bus):
        créer_demande(bus, STATION_A, "A", "B")
        assert views.lister_demandes(requête(), FOURNISSEUR_F, bus.uow).total == 0

    def test_filtre_par_statut(self, bus):
        référence = créer_demande(bus, STATION_A, "A", "B")
        créer_demande(bus, STATION_A, "A", "C")
        bus.handle(commands.ChangerStatutDemande(référence, Statut.REJETEE, STATION_B, motif="Non"))

        inactives = views.lister_demandes(requête(status="inactive"), MANAGER, bus.uow)
        actives = views.lister_demandes(requête(status="active"), MANAGER, bus.uow)

        assert [d["référence"] for d in inactives.données] == [référence]
        assert actives.total == 1

    def test_recherche_et_filtre(self, bus):
        créer_demande(bus, STATION_A, "A", "B")
        créer_demande(bus, STATION_A, "A", "C")

        page = views.lister_demandes(requête(stationSource="C"), MANAGER, bus.uow)

        assert page.total == 1
        assert views.lister_demandes(requête(search="TRF-"), MANAGER, bus.uow).total == 2


class TestDétail:
    def test_détail_avec_actions(self, bus):
        référence = créer_demande(bus, STATION_A, "A", "B")

        vue = views.détail_demande(référence, STATION_B, bus.uow)

        assert vue["référence"] == référence
        assert vue["lignes"][0]["quantité_demandée"] == 10
        assert vue["actions"] == ["Confirmée", "Rejetée"]
        assert [é["statut"] for é in vue["historique"]] == ["Enregistrée"]

    def test_hors_portée_introuvable(self, bus):
        référence = créer_demande(bus, STATION_A, "A", "B")
        with pytest.raises(Introuvable):
            views.détail_demande(référence, STATION_C, bus.uow)


class TestTableauxDeBord:
    def test_statistiques(self, bus):
        référence = créer_demande(bus, STATION_A, "A", "B")
        créer_demande(bus, STATION_A, "A", "C")
        bus.handle(commands.ChangerStatutDemande(référence, Statut.CONFIRMEE, STATION_B))

        statistiques = views.statistiques_transferts(MANAGER, bus.uow)

        assert statistiques["total"] == 2
        assert statistiques["par_statut"]["Confirmée"] == 1
        assert statistiques["par_statut"]["Enregistrée"] == 1
        assert statistiques["par_statut"]["Archivée"] == 0
        assert views.statistiques_transferts(STATION_C, bus.uow)["total"] == 1

    def test_demandes_en_attente(self, bus):
        première = créer_demande(bus, STATION_A, "A", "B")
        créer_demande(bus, STATION_A, "A", "C")
        seconde = créer_demande(bus, STATION_C, "C", "B")

        en_attente = views.demandes_en_attente(STATION_B, bus.uow)

        assert [d["référence"] for d in en_attente] == [première, seconde]
        assert views.demandes_en_attente(FOURNISSEUR_F, bus.uow) == []


class TestStocks:
    def test_une_station_ne_voit_que_son_stock(self, bus):
        bus.handle(commands.CréerStock(RéfStation("A"), "ART-1", 5, MANAGER))
        bus.handle(commands.CréerStock(RéfStation("B"), "ART-1", 7, MANAGER))

        paramètres = RequêtePagination.depuis_paramètres({}, views.TRI_STOCKS, "article")
        page = views.lister_stocks(paramètres, STATION_B, bus.uow)

        assert page.total == 1
        assert page.données[0]["site_id"] == "B"
        assert page.données[0]["quantité"] == 7
        assert views.lister_stocks(paramètres, MANAGER, bus.uow).total == 2
