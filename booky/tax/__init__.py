"""Stripe payload parsing, tax evidence and VAT tax-case resolution."""