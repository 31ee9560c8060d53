from popmart.models.audit import AuditLogEntry
from popmart.models.cart import Cart, CartLine
from popmart.models.order import BuyerInfo, ChainCorrelation, Order, OrderStatus, ProofFile
from popmart.models.product import Product, default_catalogue
from popmart.models.rating import Rating

__all__ = [
    "AuditLogEntry",
    "BuyerInfo",
    "Cart",
    "CartLine",
    "ChainCorrelation",
    "Order",
    "OrderStatus",
    "Product",
    "ProofFile",
    "Rating",
    "default_catalogue",
]
