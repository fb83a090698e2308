"""Scheduled reputation jobs."""
