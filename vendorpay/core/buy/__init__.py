from .service import BuyService

__all__ = ["BuyService"]
