"""
Infrastructure Layer
Database helpers and observability
"""
