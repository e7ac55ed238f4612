"""
Tests d'intégration des repositories avec SQLite en mémoire.

Ces tests vérifient que le mapping ORM fonctionne correctement :
- un document est rechargé avec ses lignes, son historique et son total
- les lignes retirées d'un document sont supprimées
- les stocks sont uniques par (site, article)
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from emballages.adapters import orm, repository
from emballages.domain.exceptions import Conflit
from emballages.domain.model import (
    Acteur,
    Commande,
    DemandeTransfert,
    Ligne,
    RéfFournisseur,
    RéfStation,
    Stock,
)
from emballages.domain.statuts import Rôle, Statut

STATION_B = Acteur("u-b", Rôle.STATION, RéfStation("B"))
FOURNISSEUR_F = Acteur("u-f", Rôle.FOURNISSEUR, RéfFournisseur("F"))


def nouvelle_demande(référence: str = "TRF-2024-000001") -> DemandeTransfert:
    return DemandeTransfert(
        référence, "A", "B",
        [Ligne("ART-1", 10, "2.00"), Ligne("ART-2", 5, "3.00")],
        créé_par="u-a",
    )


class TestSqlAlchemyRepository:
    def test_sauvegarder_et_recharger_une_demande(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyRepository(session, DemandeTransfert)
        repo.add(nouvelle_demande())
        session.commit()
        session.close()

        # Recharger depuis la BDD, dans une nouvelle session
        repo = repository.SqlAlchemyRepository(sqlite_session_factory(), DemandeTransfert)
        rechargée = repo.get("TRF-2024-000001")
        assert rechargée is not None
        assert rechargée.statut == Statut.ENREGISTREE
        assert rechargée.montant_total == Decimal("35.00")
        assert {l.article_id for l in rechargée.lignes} == {"ART-1", "ART-2"}
        assert rechargée.ligne("ART-1").prix_unitaire == Decimal("2.00")
        assert rechargée.événements == []

    def test_transition_et_historique_persistés(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyRepository(session, DemandeTransfert)
        repo.add(nouvelle_demande())
        session.commit()

        demande = repo.get("TRF-2024-000001")
        demande.appliquer(Statut.CONFIRMEE, STATION_B, quantités={"ART-1": 8})
        session.commit()
        session.close()

        rechargée = repository.SqlAlchemyRepository(
            sqlite_session_factory(), DemandeTransfert
        ).get("TRF-2024-000001")
        assert rechargée.statut == Statut.CONFIRMEE
        assert [é.statut for é in rechargée.historique] == [Statut.ENREGISTREE, Statut.CONFIRMEE]
        assert rechargée.historique[-1].par_acteur_id == "u-b"
        assert rechargée.ligne("ART-1").quantité_accordée == 8
        assert rechargée.montant_total == Decimal("31.00")
        assert rechargée.numéro_version == 1

    def test_commandes_et_demandes_séparées(self, session):
        demandes = repository.SqlAlchemyRepository(session, DemandeTransfert)
        commandes = repository.SqlAlchemyRepository(session, Commande)
        demandes.add(nouvelle_demande())
        commandes.add(Commande("CMD-2024-000001", "A", "F", [Ligne("ART-1", 1, "9.99")], "u-a"))
        session.commit()

        assert commandes.get("TRF-2024-000001") is None
        commande = commandes.get("CMD-2024-000001")
        assert commande.fournisseur == RéfFournisseur("F")
        assert len(commande.lignes) == 1

    def test_informations_d_expédition_persistées(self, sqlite_session_factory):
        session = sqlite_session_factory()
        commandes = repository.SqlAlchemyRepository(session, Commande)
        commande = Commande("CMD-2024-000001", "A", "F", [Ligne("ART-1", 1, "9.99")], "u-a")
        commandes.add(commande)
        commande.appliquer(
            Statut.EXPEDIEE, FOURNISSEUR_F, document_url="https://docs/bl.pdf",
            transporteur="Transports Martin", numéro_suivi="TM-4521",
        )
        session.commit()
        session.close()

        rechargée = repository.SqlAlchemyRepository(sqlite_session_factory(), Commande).get(
            "CMD-2024-000001"
        )
        assert rechargée.transporteur == "Transports Martin"
        assert rechargée.numéro_suivi == "TM-4521"
        assert rechargée.non_conformités is None

    def test_remplacer_les_lignes_supprime_les_anciennes(self, session):
        repo = repository.SqlAlchemyRepository(session, DemandeTransfert)
        repo.add(nouvelle_demande())
        session.commit()

        repo.get("TRF-2024-000001").remplacer_lignes([Ligne("ART-3", 1, "1.00")])
        session.commit()

        assert session.execute(select(func.count()).select_from(orm.lignes)).scalar_one() == 1

    def test_supprimer_une_demande_et_ses_lignes(self, session):
        repo = repository.SqlAlchemyRepository(session, DemandeTransfert)
        repo.add(nouvelle_demande())
        session.commit()

        repo.supprimer(repo.get("TRF-2024-000001"))
        session.commit()

        assert repo.get("TRF-2024-000001") is None
        assert session.execute(select(func.count()).select_from(orm.lignes)).scalar_one() == 0
        assert session.execute(
            select(func.count()).select_from(orm.historique_statuts)
        ).scalar_one() == 0

    def test_dernière_référence_de_l_année(self, session):
        repo = repository.SqlAlchemyRepository(session, DemandeTransfert)
        for référence in ("TRF-2023-000009", "TRF-2024-000001", "TRF-2024-000002"):
            repo.add(nouvelle_demande(référence))
        session.commit()

        assert repo.dernière_référence("TRF-2024-") == "TRF-2024-000002"
        assert repo.dernière_référence("TRF-2025-") is None

    def test_seen_trace_les_agrégats(self, session):
        repo = repository.SqlAlchemyRepository(session, DemandeTransfert)
        demande = nouvelle_demande()
        repo.add(demande)
        session.commit()

        assert demande in repo.seen
        repo2 = repository.SqlAlchemyRepository(session, DemandeTransfert)
        repo2.get("TRF-2024-000001")
        assert len(repo2.seen) == 1


class TestSqlAlchemyStockRepository:
    def test_ajouter_et_retrouver_un_stock(self, session):
        repo = repository.SqlAlchemyStockRepository(session)
        repo.add(Stock(RéfStation("A"), "ART-1", 12))
        session.commit()

        stock = repo.get(RéfStation("A"), "ART-1")
        assert stock.quantité == 12
        assert stock.site == RéfStation("A")
        assert repo.get(RéfFournisseur("A"), "ART-1") is None

    def test_doublon_refusé(self, session):
        repo = repository.SqlAlchemyStockRepository(session)
        repo.add(Stock(RéfStation("A"), "ART-1", 12))
        session.commit()

        with pytest.raises(Conflit):
            repo.add(Stock(RéfStation("A"), "ART-1", 1))

    def test_contrainte_d_unicité(self, session):
        session.add_all([Stock(RéfStation("A"), "ART-1", 1), Stock(RéfStation("A"), "ART-1", 2)])
        with pytest.raises(IntegrityError):
            session.commit()


class TestSqlAlchemyRéférentiel:
    def test_stations_et_fournisseurs(self, session):
        référentiel = repository.SqlAlchemyRéférentiel(session)
        assert référentiel.station("A").nom == "Station A"
        assert référentiel.fournisseur("F").actif
        assert référentiel.station("F") is None
