from .storefront_client import ApiRequest, StorefrontAPI

__all__ = ["ApiRequest", "StorefrontAPI"]
