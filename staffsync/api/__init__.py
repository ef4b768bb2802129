"""HTTP surface for provider webhooks."""
