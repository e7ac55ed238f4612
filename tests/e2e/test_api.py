"""
Tests end-to-end de l'API Flask.

Ces tests vérifient le flux complet :
HTTP request → Flask → Message Bus → Handlers → Repository → SQLite

On utilise le test client Flask avec une base SQLite en mémoire,
ce qui donne des tests rapides tout en couvrant toute la chaîne.
"""

import pytest

from emballages.adapters import notifications
from emballages.entrypoints.flask_app import app
from emballages.service_layer import bootstrap, unit_of_work


class FakeNotifications(notifications.AbstractNotifications):
    def __init__(self):
        self.envoyés = []

    def send(self, destination: str, message: str) -> None:
        self.envoyés.append({"destination": destination, "message": message})


@pytest.fixture
def sqlite_bus(sqlite_session_factory):
    """Crée un message bus configuré avec SQLite en mémoire."""
    uow = unit_of_work.SqlAlchemyUnitOfWork(session_factory=sqlite_session_factory)
    return bootstrap.bootstrap(
        start_orm=False,
        uow=uow,
        notifications_adapter=FakeNotifications(),
    )


@pytest.fixture
def client(sqlite_bus):
    """Client de test Flask avec le bus injecté."""
    import emballages.entrypoints.flask_app as flask_module

    original_bus = flask_module.bus
    flask_module.bus = sqlite_bus
    app.config["TESTING"] = True

    with app.test_client() as client:
        yield client

    flask_module.bus = original_bus


def en_tête(acteur_id, rôle, type_entité=None, entité_id=None):
    headers = {"X-Acteur-Id": acteur_id, "X-Acteur-Role": rôle}
    if type_entité:
        headers.update({"X-Entite-Type": type_entité, "X-Entite-Id": entité_id})
    return headers


MANAGER = en_tête("u-manager", "Manager")
GESTIONNAIRE = en_tête("u-gestionnaire", "Gestionnaire")
STATION_A = en_tête("u-a", "Station", "Station", "A")
STATION_B = en_tête("u-b", "Station", "Station", "B")
STATION_C = en_tête("u-c", "Station", "Station", "C")
FOURNISSEUR_F = en_tête("u-f", "Fournisseur", "Fournisseur", "F")

ARTICLES = [
    {"articleId": "ART-1", "quantity": 10, "unitPrice": "2.00"},
    {"articleId": "ART-2", "quantity": 5, "unitPrice": "3.00"},
]


def créer_demande(client, headers=STATION_A, source="B"):
    return client.post(
        "/demandes-transfert",
        json={"stationSourceId": source, "articles": ARTICLES},
        headers=headers,
    )


def patch(client, référence, headers, **body):
    return client.patch(f"/demandes-transfert/{référence}", json=body, headers=headers)


class TestCréerDemande:
    def test_créer_une_demande(self, client):
        response = créer_demande(client)

        assert response.status_code == 201
        data = response.get_json()
        assert data["référence"].startswith("TRF-")
        assert data["montant_total"] == 35.0
        assert data["statut"] == "Enregistrée"
        assert data["station_destination_id"] == "A"

    def test_sans_authentification(self, client):
        response = client.post("/demandes-transfert", json={})
        assert response.status_code == 401
        assert response.get_json()["statusCode"] == 401

    def test_rôle_inconnu(self, client):
        response = client.get("/demandes-transfert", headers=en_tête("u", "Pirate"))
        assert response.status_code == 401

    def test_données_invalides(self, client):
        response = client.post(
            "/demandes-transfert",
            json={"stationSourceId": "B", "articles": [{"articleId": "ART-1", "quantity": 0,
                                                        "unitPrice": "1"}]},
            headers=STATION_A,
        )
        assert response.status_code == 400

    def test_station_inconnue(self, client):
        assert créer_demande(client, source="INCONNUE").status_code == 404

    @pytest.mark.parametrize("prix", ["Infinity", "NaN", "sNaN"])
    def test_prix_non_fini(self, client, prix):
        response = client.post(
            "/demandes-transfert",
            json={"stationSourceId": "B", "articles": [{"articleId": "ART-1", "quantity": 1,
                                                        "unitPrice": prix}]},
            headers=STATION_A,
        )
        assert response.status_code == 400
        assert response.get_json()["statusCode"] == 400


class TestWorkflow:
    def test_scénario_complet_jusqu_à_la_réception(self, client):
        référence = créer_demande(client).get_json()["référence"]

        assert patch(client, référence, STATION_B, status="Confirmée").status_code == 200
        assert patch(client, référence, GESTIONNAIRE, status="Traitée logistique").status_code == 200
        assert patch(
            client, référence, STATION_B, status="Expédiée", deliveryNoteUrl="https://docs/bl.pdf"
        ).status_code == 200
        response = patch(
            client, référence, STATION_A, status="Réceptionnée",
            quantities={"ART-1": 8, "ART-2": 5}, signedDeliveryNoteUrl="https://docs/bl-emarge.pdf",
        )

        assert response.status_code == 200
        assert response.get_json()["statut"] == "Réceptionnée"
        assert response.get_json()["actions"] == ["Clôturée"]
        assert response.get_json()["bon_livraison_émargé_url"] == "https://docs/bl-emarge.pdf"
        stocks_a = client.get("/stocks", headers=STATION_A).get_json()["data"]
        stocks_b = client.get("/stocks", headers=STATION_B).get_json()["data"]
        assert {s["article_id"]: s["quantité"] for s in stocks_a} == {"ART-1": 8, "ART-2": 5}
        assert {s["article_id"]: s["quantité"] for s in stocks_b} == {"ART-1": -8, "ART-2": -5}

    def test_manager_reconfirme_interdit(self, client):
        référence = créer_demande(client).get_json()["référence"]
        patch(client, référence, STATION_B, status="Confirmée")

        response = patch(client, référence, MANAGER, status="Confirmée")

        assert response.status_code == 403
        assert response.get_json()["statusCode"] == 403

    def test_transition_invalide(self, client):
        référence = créer_demande(client).get_json()["référence"]
        response = patch(client, référence, STATION_B, status="Archivée")
        assert response.status_code == 400

    def test_rejet_sans_motif(self, client):
        référence = créer_demande(client).get_json()["référence"]
        response = patch(client, référence, STATION_B, status="Rejetée")
        assert response.status_code == 400
        assert "motif" in response.get_json()["message"]

    def test_réception_sans_bon_émargé(self, client):
        référence = créer_demande(client).get_json()["référence"]
        patch(client, référence, STATION_B, status="Confirmée")
        patch(client, référence, GESTIONNAIRE, status="Traitée logistique")
        patch(client, référence, STATION_B, status="Expédiée", deliveryNoteUrl="https://docs/bl.pdf")

        response = patch(client, référence, STATION_A, status="Réceptionnée")

        assert response.status_code == 400
        assert "émargé" in response.get_json()["message"]
        assert client.get("/stocks", headers=STATION_A).get_json()["total"] == 0

    def test_statut_inconnu(self, client):
        référence = créer_demande(client).get_json()["référence"]
        assert patch(client, référence, STATION_B, status="Perdue").status_code == 400

    def test_demande_inexistante(self, client):
        response = patch(client, "TRF-2000-000001", STATION_B, status="Confirmée")
        assert response.status_code == 404


class TestLecture:
    def test_liste_paginée(self, client):
        for _ in range(3):
            créer_demande(client)

        response = client.get(
            "/demandes-transfert?page=0&limit=500&sortBy=inconnu", headers=STATION_A
        )

        assert response.status_code == 200
        data = response.get_json()
        assert (data["page"], data["limit"], data["total"]) == (1, 100, 3)
        assert data["totalPages"] == 1
        assert not data["hasPreviousPage"]

    def test_une_autre_station_ne_voit_rien(self, client):
        référence = créer_demande(client).get_json()["référence"]

        assert client.get("/demandes-transfert", headers=STATION_C).get_json()["total"] == 0
        assert client.get(f"/demandes-transfert/{référence}", headers=STATION_C).status_code == 404

    def test_statistiques_et_en_attente(self, client):
        référence = créer_demande(client).get_json()["référence"]

        statistiques = client.get("/demandes-transfert/statistiques", headers=MANAGER).get_json()
        en_attente = client.get("/demandes-transfert/en-attente", headers=STATION_B).get_json()

        assert statistiques["par_statut"]["Enregistrée"] == 1
        assert [d["référence"] for d in en_attente] == [référence]


class TestModifierEtSupprimer:
    def test_modifier_puis_supprimer(self, client):
        référence = créer_demande(client).get_json()["référence"]

        response = client.put(
            f"/demandes-transfert/{référence}",
            json={"articles": [{"articleId": "ART-9", "quantity": 2, "unitPrice": "4.50"}]},
            headers=STATION_A,
        )
        assert response.status_code == 200
        assert response.get_json()["montant_total"] == 9.0

        assert client.delete(f"/demandes-transfert/{référence}", headers=STATION_A).status_code == 204
        assert client.get(f"/demandes-transfert/{référence}", headers=MANAGER).status_code == 404

    def test_suppression_refusée_après_confirmation(self, client):
        référence = créer_demande(client).get_json()["référence"]
        patch(client, référence, STATION_B, status="Confirmée")

        response = client.delete(f"/demandes-transfert/{référence}", headers=STATION_A)

        assert response.status_code == 400


class TestCommandes:
    def test_cycle_de_commande(self, client):
        response = client.post(
            "/commandes", json={"fournisseurId": "F", "articles": ARTICLES}, headers=STATION_A
        )
        assert response.status_code == 201
        référence = response.get_json()["référence"]

        response = client.patch(
            f"/commandes/{référence}",
            json={"status": "Confirmée", "quantities": {"ART-1": 6}},
            headers=FOURNISSEUR_F,
        )

        assert response.status_code == 200
        assert response.get_json()["montant_total"] == 27.0

        response = client.patch(
            f"/commandes/{référence}",
            json={"status": "Expédiée", "deliveryNoteUrl": "https://docs/bl.pdf",
                  "carrier": "Transports Martin", "trackingNumber": "TM-4521"},
            headers=FOURNISSEUR_F,
        )
        assert response.status_code == 200
        assert response.get_json()["transporteur"] == "Transports Martin"
        assert response.get_json()["numéro_suivi"] == "TM-4521"
        liste = client.get("/commandes", headers=FOURNISSEUR_F).get_json()
        assert liste["total"] == 1

    def test_un_fournisseur_ne_crée_pas(self, client):
        response = client.post(
            "/commandes",
            json={"stationId": "A", "fournisseurId": "F", "articles": ARTICLES},
            headers=FOURNISSEUR_F,
        )
        assert response.status_code == 403


class TestStocks:
    def test_créer_puis_ajuster(self, client):
        response = client.post("/stocks", json={"articleId": "ART-1", "quantity": 4}, headers=STATION_A)
        assert response.status_code == 201

        assert client.post(
            "/stocks", json={"articleId": "ART-1", "quantity": 1}, headers=STATION_A
        ).status_code == 409

        response = client.put("/stocks", json={"articleId": "ART-1", "quantity": 9}, headers=STATION_A)
        assert response.status_code == 200
        data = client.get("/stocks", headers=STATION_A).get_json()["data"]
        assert data[0]["quantité"] == 9

    def test_stock_d_un_autre_site_interdit(self, client):
        response = client.post(
            "/stocks",
            json={"typeSite": "Station", "siteId": "B", "articleId": "ART-1", "quantity": 4},
            headers=STATION_A,
        )
        assert response.status_code == 403


class TestPermissions:
    def test_permissions_d_une_station(self, client):
        response = client.get("/permissions?document=transfert", headers=STATION_A)

        assert response.status_code == 200
        data = response.get_json()
        assert data["role"] == "Station"
        assert data["permissions"]["canCreate"]
        assert data["permissions"]["canApprove"]
        assert not data["permissions"]["canViewAll"]

    def test_type_de_document_inconnu(self, client):
        response = client.get("/permissions?document=facture", headers=MANAGER)
        assert response.status_code == 400
