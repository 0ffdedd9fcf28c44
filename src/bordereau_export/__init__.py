"""bordereau-export — Turn priced work-item spreadsheets into clean exports."""

__version__ = "0.2.0"

ANCHOR_LABEL = "n° prix"

EXPORT_COLUMNS: list[str] = [
    "N°Prix",
    "Désignation",
    "Unité",
    "Quantité",
    "P.U DH.HT",
    "Montant Total HT",
]
