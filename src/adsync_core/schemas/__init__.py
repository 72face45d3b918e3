"""Shared record models."""
