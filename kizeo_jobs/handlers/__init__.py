"""Fetch handlers for each artifact kind."""

from kizeo_jobs.handlers import pdf, photo  # noqa: F401
