"""
Exceptions métier.

Toutes les erreurs levées par le domaine et la service layer héritent
d'ErreurMétier. Le point d'entrée HTTP les traduit en réponses 4xx ;
toute autre exception remonte en 500.
"""


class ErreurMétier(Exception):
    """Classe de base des erreurs fonctionnelles."""
    pass


class DonnéesInvalides(ErreurMétier):
    """Données d'entrée mal formées ou incohérentes."""
    pass


class QuantitéIncohérente(DonnéesInvalides):
    """L'invariant livrée <= accordée <= demandée n'est pas respecté."""
    pass


class Introuvable(ErreurMétier):
    """Document, stock ou entité inconnu (ou hors du périmètre de l'acteur)."""
    pass


class TransitionInvalide(ErreurMétier):
    """La transition demandée n'existe pas dans le graphe des statuts."""
    pass


class AccèsRefusé(ErreurMétier):
    """Le rôle ou l'entité de l'acteur ne permet pas l'action."""
    pass


class TransitionInterdite(AccèsRefusé):
    """La transition existe, mais l'acteur n'a pas le droit de l'effectuer."""
    pass


class Conflit(ErreurMétier):
    """Violation d'unicité (par exemple deux stocks pour le même site et article)."""
    pass


class NonAuthentifié(ErreurMétier):
    pass
