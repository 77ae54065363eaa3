"""
Business logic services.

Each service handles one domain area. Import concrete services from their
modules (services.import_service, services.reconciliation_service, ...).
"""
