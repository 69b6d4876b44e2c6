"""Availability ledger: capacity shards, payment holds and confirmed consumption."""
