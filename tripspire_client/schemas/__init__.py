"""Pydantic schemas for payloads exchanged with the Tripspire API."""
