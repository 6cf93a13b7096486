# sequencer/__init__.py
"""
Sequencer: signs client messages and processes into verifiable bundles,
commits them to an append-only ledger network and keeps a locally indexed,
deterministically ordered copy per process.
"""

__version__ = "0.1.0"
