"""Celery workers for Ticketing Service notifications."""
