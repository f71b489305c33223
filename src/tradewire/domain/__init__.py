"""
Domain layer - error taxonomy and classification rules.

IMPORTANT: This layer must NOT depend on infrastructure or application layers.
"""
