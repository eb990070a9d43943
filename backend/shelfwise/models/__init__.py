"""Shelfwise — SQLAlchemy models."""
from shelfwise.models.audit import AuditLog, Counter
from shelfwise.models.grn import GoodsReceiptNote, GRNLine, GRNPlacement, GRNStatus
from shelfwise.models.location import LocationLevel, Rack, Shelf, Warehouse, Zone
from shelfwise.models.party import Party, PartyType
from shelfwise.models.purchase_order import POStatus, PurchaseOrder, PurchaseOrderLine
from shelfwise.models.stock import MovementType, Placement, PutAwayState, StockMovement, StockUnit

__all__ = [
    "Warehouse", "Zone", "Rack", "Shelf", "LocationLevel",
    "Placement", "StockMovement", "StockUnit", "MovementType", "PutAwayState",
    "Party", "PartyType",
    "PurchaseOrder", "PurchaseOrderLine", "POStatus",
    "GoodsReceiptNote", "GRNLine", "GRNPlacement", "GRNStatus",
    "AuditLog", "Counter",
]
