"""Celery task definitions package."""

from cart_engine.tasks import events  # noqa: F401

__all__ = ["events"]
