"""Security and data lifecycle — payload encryption, audit trail, erasure, retention."""
