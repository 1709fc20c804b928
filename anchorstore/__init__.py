"""
Anchorstore: permissioned, content-addressed storage core for supply-chain assets and events.
Entries are hash-addressed and Ed25519-signed, batched into signed bundles and anchored to a ledger.

Inspired by shipping manifests + notarised ledgers for IoT telemetry.
"""

__version__ = "0.1.0-dev"
