"""
Mapping ORM avec SQLAlchemy (classical mapping).

Les tables sont déclarées séparément puis les classes du domaine sont
mappées dessus : le modèle reste ignorant de la persistance.

Les noms de colonnes SQL restent en ASCII ; le mapping les traduit vers
les attributs français du domaine.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import registry, relationship

from emballages.domain import model
from emballages.domain.statuts import Statut

metadata = MetaData()
mapper_registry = registry(metadata=metadata)


def _enum(classe, nom: str) -> Enum:
    """Enum stocké par valeur (libellé français), sans type natif."""
    return Enum(
        classe,
        name=nom,
        native_enum=False,
        length=50,
        values_callable=lambda e: [m.value for m in e],
    )


# --- Référentiel ---

stations = Table(
    "stations",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("nom", String(255), nullable=False),
    Column("actif", Boolean, nullable=False, default=True),
)

fournisseurs = Table(
    "fournisseurs",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("nom", String(255), nullable=False),
    Column("actif", Boolean, nullable=False, default=True),
)

# --- Documents ---

demandes_transfert = Table(
    "demandes_transfert",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reference", String(32), nullable=False, unique=True),
    Column("station_destination_id", String(64), ForeignKey("stations.id"), nullable=False),
    Column("station_source_id", String(64), ForeignKey("stations.id"), nullable=False),
    Column("statut", _enum(Statut, "statut_document"), nullable=False),
    Column("montant_total", Numeric(12, 2), nullable=False),
    Column("cree_par", String(64), nullable=False),
    Column("cree_le", DateTime(timezone=True), nullable=False),
    Column("motif_rejet", Text, nullable=True),
    Column("bon_livraison_url", String(1024), nullable=True),
    Column("date_expedition", DateTime(timezone=True), nullable=True),
    Column("transporteur", String(255), nullable=True),
    Column("numero_suivi", String(255), nullable=True),
    Column("bon_livraison_emarge_url", String(1024), nullable=True),
    Column("date_reception", DateTime(timezone=True), nullable=True),
    Column("non_conformites", Text, nullable=True),
    Column("numero_version", Integer, nullable=False, server_default="0"),
)

commandes = Table(
    "commandes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reference", String(32), nullable=False, unique=True),
    Column("station_id", String(64), ForeignKey("stations.id"), nullable=False),
    Column("fournisseur_id", String(64), ForeignKey("fournisseurs.id"), nullable=False),
    Column("statut", _enum(Statut, "statut_document"), nullable=False),
    Column("montant_total", Numeric(12, 2), nullable=False),
    Column("cree_par", String(64), nullable=False),
    Column("cree_le", DateTime(timezone=True), nullable=False),
    Column("motif_rejet", Text, nullable=True),
    Column("bon_livraison_url", String(1024), nullable=True),
    Column("date_expedition", DateTime(timezone=True), nullable=True),
    Column("transporteur", String(255), nullable=True),
    Column("numero_suivi", String(255), nullable=True),
    Column("bon_livraison_emarge_url", String(1024), nullable=True),
    Column("date_reception", DateTime(timezone=True), nullable=True),
    Column("non_conformites", Text, nullable=True),
    Column("numero_version", Integer, nullable=False, server_default="0"),
)

# Une ligne appartient soit à une demande, soit à une commande.
lignes = Table(
    "lignes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("demande_id", Integer, ForeignKey("demandes_transfert.id", ondelete="CASCADE"), nullable=True),
    Column("commande_id", Integer, ForeignKey("commandes.id", ondelete="CASCADE"), nullable=True),
    Column("article_id", String(64), nullable=False),
    Column("quantite_demandee", Integer, nullable=False),
    Column("quantite_accordee", Integer, nullable=True),
    Column("quantite_livree", Integer, nullable=True),
    Column("prix_unitaire", Numeric(12, 2), nullable=False),
)

historique_statuts = Table(
    "historique_statuts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("demande_id", Integer, ForeignKey("demandes_transfert.id", ondelete="CASCADE"), nullable=True),
    Column("commande_id", Integer, ForeignKey("commandes.id", ondelete="CASCADE"), nullable=True),
    Column("statut", _enum(Statut, "statut_document"), nullable=False),
    Column("date", DateTime(timezone=True), nullable=False),
    Column("par_acteur_id", String(64), nullable=False),
)

# --- Stock ---

stocks = Table(
    "stocks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type_site", _enum(model.TypeEntité, "type_entite"), nullable=False),
    Column("site_id", String(64), nullable=False),
    Column("article_id", String(64), nullable=False),
    Column("quantite", Integer, nullable=False, default=0),
    UniqueConstraint("type_site", "site_id", "article_id", name="uq_stock_site_article"),
)


def _propriétés_document(table: Table, lignes_mapper, historique_mapper) -> dict:
    return {
        "référence": table.c.reference,
        "créé_par": table.c.cree_par,
        "créé_le": table.c.cree_le,
        "date_expédition": table.c.date_expedition,
        "bon_livraison_émargé_url": table.c.bon_livraison_emarge_url,
        "date_réception": table.c.date_reception,
        "numéro_suivi": table.c.numero_suivi,
        "non_conformités": table.c.non_conformites,
        "numéro_version": table.c.numero_version,
        "lignes": relationship(
            lignes_mapper,
            cascade="all, delete-orphan",
            order_by=lignes.c.id,
        ),
        "historique": relationship(
            historique_mapper,
            cascade="all, delete-orphan",
            order_by=historique_statuts.c.id,
        ),
    }


def start_mappers() -> None:
    """
    Configure le mapping entre les classes du domaine et les tables SQL.

    Sans effet si le mapping est déjà en place : l'entrypoint et la
    configuration des tests peuvent l'appeler tous les deux.
    """
    if mapper_registry.mappers:
        return

    mapper_registry.map_imperatively(model.Station, stations)
    mapper_registry.map_imperatively(model.Fournisseur, fournisseurs)

    # Lignes et étapes ont deux parents possibles : legacy_is_orphan
    # ne les considère orphelines que si aucun des deux ne les référence.
    lignes_mapper = mapper_registry.map_imperatively(
        model.Ligne,
        lignes,
        properties={
            "quantité_demandée": lignes.c.quantite_demandee,
            "quantité_accordée": lignes.c.quantite_accordee,
            "quantité_livrée": lignes.c.quantite_livree,
        },
        legacy_is_orphan=True,
    )
    historique_mapper = mapper_registry.map_imperatively(
        model.ÉtapeHistorique,
        historique_statuts,
        legacy_is_orphan=True,
    )
    mapper_registry.map_imperatively(
        model.DemandeTransfert,
        demandes_transfert,
        properties=_propriétés_document(demandes_transfert, lignes_mapper, historique_mapper),
    )
    mapper_registry.map_imperatively(
        model.Commande,
        commandes,
        properties=_propriétés_document(commandes, lignes_mapper, historique_mapper),
    )
    mapper_registry.map_imperatively(
        model.Stock,
        stocks,
        properties={"quantité": stocks.c.quantite},
    )


@event.listens_for(model.DocumentWorkflow, "load", propagate=True)
def receive_load_document(document: model.DocumentWorkflow, _: object) -> None:
    """Initialise la liste d'événements d'un document chargé depuis la BDD."""
    document.événements = []


@event.listens_for(model.Stock, "load")
def receive_load_stock(stock: model.Stock, _: object) -> None:
    stock.événements = []
