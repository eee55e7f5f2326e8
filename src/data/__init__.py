"""
Data-access layer for the Movies database.
It groups the entity model, table mappings, value converters, and the persistence context.
Callers outside this package only see entities and the context API, never stored representations.
"""
