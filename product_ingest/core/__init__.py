"""
Core domain: models, catalog schemas, validators, rules and exceptions.
"""
