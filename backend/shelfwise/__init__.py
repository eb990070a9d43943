"""Shelfwise — warehouse storage hierarchy and inbound goods reconciliation."""
