"""Synchronization of facts and entities with the registry."""

from .entities import EntityReconciler, EntityUpdateReport, UpdateStatus, correct_diagnoses, reconcile
from .facts import FactSynchronizer, FactSyncReport, replace_facts
from .fallback import with_country_fallback

__all__ = [
    "EntityReconciler",
    "EntityUpdateReport",
    "FactSyncReport",
    "FactSynchronizer",
    "UpdateStatus",
    "correct_diagnoses",
    "reconcile",
    "replace_facts",
    "with_country_fallback",
]
