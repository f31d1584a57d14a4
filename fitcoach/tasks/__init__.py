"""Background tasks for the FitCoach platform.

This package contains Celery tasks for:
- Daily session status reconciliation
"""
