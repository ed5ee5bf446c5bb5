from .models import Vendor
from .registry import VendorRegistry

__all__ = [
    "Vendor",
    "VendorRegistry",
]
