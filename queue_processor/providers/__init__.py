"""Concrete adapters for the interfaces in :mod:`queue_processor.interfaces`."""
