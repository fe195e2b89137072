"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .mercadopago_client import MercadoPagoClient

__all__ = ['MercadoPagoClient']
