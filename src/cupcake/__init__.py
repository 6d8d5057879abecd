"""
Cupcake transaction submission engine.

Broadcasts signed Solana transactions, rebroadcasts while pending, and races
a websocket subscription against status polling for a verdict per
transaction.
"""

__version__ = "0.1.0"
