"""
Platform Constants

Plan defaults, default pipeline stages and pt-BR display labels.
"""

SUBSCRIPTION_PRICE_CENTS = 4900  # R$ 49,00
TRIAL_DAYS = 7

DEFAULT_PAGE_SIZE = 20

# Created for every tenant during onboarding
DEFAULT_STAGES = (
    {"name": "Novo Lead", "position": 1, "is_final": False},
    {"name": "Em Contato", "position": 2, "is_final": False},
    {"name": "Visita Agendada", "position": 3, "is_final": False},
    {"name": "Negociação", "position": 4, "is_final": False},
    {"name": "Fechado", "position": 5, "is_final": True},
)

TRANSACTION_TYPE_LABELS = {
    "SALE": "Venda",
    "RENT": "Aluguel",
    "BOTH": "Venda ou Aluguel",
}

PROPERTY_TYPE_LABELS = {
    "APARTMENT": "Apartamento",
    "HOUSE": "Casa",
}

PROPERTY_STATUS_LABELS = {
    "ACTIVE": "Ativo",
    "SOLD": "Vendido",
    "RENTED": "Alugado",
    "INACTIVE": "Inativo",
}

SUBSCRIPTION_STATUS_LABELS = {
    "TRIAL": "Teste grátis",
    "ACTIVE": "Ativa",
    "PAST_DUE": "Pagamento pendente",
    "CANCELED": "Cancelada",
}


def label_for(labels: dict[str, str], value) -> str:
    """Translate an enum value, falling back to the raw value."""
    key = getattr(value, "value", value)
    return labels.get(key, key)
