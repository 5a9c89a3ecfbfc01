"""
Integration tests running the services against a real SQLAlchemy store
"""
