"""
Token validation package.

Structural pre-checks and cryptographic verification of API keys. See
token_verifier for the failure taxonomy (malformed vs. unauthorized).
"""
