"""
Backend package for the contest entry API.

This package provides a FastAPI application that takes entry-fee payments
through Stripe, verifies them, and stores contest submissions behind
database and storage abstractions that also run in serverless deployments.
"""
