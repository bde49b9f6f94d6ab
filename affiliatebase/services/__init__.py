"""Integrations: admin auth, payments, logo storage, analytics and metrics."""
