"""Stripe webhook handling, evidence gathering and VAT tax-case resolution for bookkeeping."""

__version__ = "0.1.0"