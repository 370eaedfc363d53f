"""
Backend attribution: reconciles partner deposit intents with on-chain deposits.

Partners declare expected deposits; the indexer delivers confirmed deposits;
the engine attributes each deposit to at most one partner (explicit tag or
inferred match) and sweeps intents and deposits that never pair up.
"""

__version__ = "0.1.0"
