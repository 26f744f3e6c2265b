"""
certkeeper - OpenVPN certificate lifecycle keeper.

Tracks user and server certificates issued by Vault PKI, renews them ahead
of expiry, syncs server certificates to RouterOS and mails client profiles.
"""

__version__ = "1.0.0"
