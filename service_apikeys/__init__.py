"""
254Carbon Access Layer - API Key Service.
"""
