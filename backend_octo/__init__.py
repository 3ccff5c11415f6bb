"""
Backend Octo — donation-fed vitality agent for a single Solana wallet.

Watches one public address for incoming SOL transfers, credits each
transfer exactly once as HP, and drains HP over time. Modular layout:
listener, push ingestion, ledger, vitality state machine, API server and
agent worker.
"""

__version__ = "0.1.0"
