"""Deposit checkout and payment reconciliation."""
