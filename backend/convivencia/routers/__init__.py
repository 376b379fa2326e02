"""Convivencia Escolar - API Routers"""
from .cases import router as cases_router
from .compliance import router as compliance_router

__all__ = [
    "cases_router",
    "compliance_router",
]
