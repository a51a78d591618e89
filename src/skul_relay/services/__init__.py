"""Domain services: classification, ledger, admission and notifications."""
