"""ORM models exposed for external modules."""
from .base import Base
from .category import Category
from .document import Document
from .image import Image
from .import_job import TERMINAL_STATUSES, ImportJob, ImportStatus
from .price import Price
from .producer import Producer
from .product import Product
from .product_property import ProductProperty
from .unit import Unit
from .variant import Variant

__all__ = [
    "Base",
    "Category",
    "Document",
    "Image",
    "ImportJob",
    "ImportStatus",
    "TERMINAL_STATUSES",
    "Price",
    "Producer",
    "Product",
    "ProductProperty",
    "Unit",
    "Variant",
]
