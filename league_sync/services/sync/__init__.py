"""Sync services: player catalog, roster reconciliation and the sync engine."""
