"""Traveler Database: SQLAlchemy tables and session management."""
