"""Stripe API client, models, amount conversion, sale evidence and notifications."""