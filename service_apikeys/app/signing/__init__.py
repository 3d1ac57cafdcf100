"""
API key issuance.
"""
