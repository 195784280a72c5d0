"""Delivery package"""
from .client import AuthorizationError, CollectorClient, CollectorError
from .pipeline import DeliveryPipeline

__all__ = ["AuthorizationError", "CollectorClient", "CollectorError", "DeliveryPipeline"]
