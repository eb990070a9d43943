"""create storage hierarchy, parties, procurement, receipts, stock and audit tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ── Storage hierarchy ────────────────────────────────────────────────────
    op.create_table(
        "warehouses",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("zone_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rack_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shelf_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("product_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    # Codes are unique among live siblings only; soft-deleted nodes free their code.
    op.create_index("ix_warehouses_code_active", "warehouses", ["code"], unique=True,
                    postgresql_where=sa.text("is_active"))

    op.create_table(
        "zones",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("warehouse_id", UUID(as_uuid=True), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("rack_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shelf_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("product_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_zones_warehouse_id", "zones", ["warehouse_id"])
    op.create_index("ix_zones_warehouse_code_active", "zones", ["warehouse_id", "code"], unique=True,
                    postgresql_where=sa.text("is_active"))

    op.create_table(
        "racks",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("zone_id", UUID(as_uuid=True), sa.ForeignKey("zones.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", UUID(as_uuid=True), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("shelf_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("product_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_racks_zone_id", "racks", ["zone_id"])
    op.create_index("ix_racks_zone_code_active", "racks", ["zone_id", "code"], unique=True,
                    postgresql_where=sa.text("is_active"))

    op.create_table(
        "shelves",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("rack_id", UUID(as_uuid=True), sa.ForeignKey("racks.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("zone_id", UUID(as_uuid=True), sa.ForeignKey("zones.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", UUID(as_uuid=True), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("product_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_occupancy", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_shelves_rack_id", "shelves", ["rack_id"])
    op.create_index("ix_shelves_rack_code_active", "shelves", ["rack_id", "code"], unique=True,
                    postgresql_where=sa.text("is_active"))

    # ── Parties ──────────────────────────────────────────────────────────────
    op.create_table(
        "parties",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("code", sa.String(100), nullable=True),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("gstin", sa.String(15), nullable=True, unique=True),
        sa.Column("pan", sa.String(10), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("type IN ('supplier', 'customer', 'both')", name="ck_parties_type"),
    )

    # ── Purchase orders ──────────────────────────────────────────────────────
    op.create_table(
        "purchase_orders",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("po_number", sa.String(50), nullable=False, unique=True),
        sa.Column("supplier_party_id", UUID(as_uuid=True), sa.ForeignKey("parties.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("supplier_name", sa.String(255), nullable=False),
        sa.Column("warehouse_id", UUID(as_uuid=True), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("expected_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_purchase_orders_supplier_party_id", "purchase_orders", ["supplier_party_id"])
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])

    op.create_table(
        "purchase_order_lines",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("po_id", UUID(as_uuid=True), sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("expected_qty", sa.Integer(), nullable=False),
        sa.Column("received_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False),
        sa.UniqueConstraint("po_id", "sku", name="uq_purchase_order_lines_po_sku"),
        sa.CheckConstraint("expected_qty > 0", name="ck_purchase_order_lines_expected_positive"),
        sa.CheckConstraint("received_qty >= 0", name="ck_purchase_order_lines_received_non_negative"),
    )

    # ── Goods receipt notes ──────────────────────────────────────────────────
    op.create_table(
        "goods_receipt_notes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("grn_number", sa.String(50), nullable=False, unique=True),
        sa.Column("po_id", UUID(as_uuid=True), sa.ForeignKey("purchase_orders.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("po_number", sa.String(50), nullable=False),
        sa.Column("warehouse_id", UUID(as_uuid=True), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_by", UUID(as_uuid=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_goods_receipt_notes_po_id", "goods_receipt_notes", ["po_id"])

    op.create_table(
        "grn_lines",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("grn_id", UUID(as_uuid=True), sa.ForeignKey("goods_receipt_notes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("expected_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("received_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accepted_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rejected_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.CheckConstraint("received_qty = accepted_qty + rejected_qty", name="ck_grn_lines_received_split"),
    )

    op.create_table(
        "grn_placements",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("grn_line_id", UUID(as_uuid=True), sa.ForeignKey("grn_lines.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shelf_id", UUID(as_uuid=True), sa.ForeignKey("shelves.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("rack_id", UUID(as_uuid=True), nullable=False),
        sa.Column("zone_id", UUID(as_uuid=True), nullable=False),
        sa.Column("warehouse_id", UUID(as_uuid=True), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
    )

    # ── Stock ────────────────────────────────────────────────────────────────
    op.create_table(
        "placements",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("shelf_id", UUID(as_uuid=True), sa.ForeignKey("shelves.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("rack_id", UUID(as_uuid=True), nullable=False),
        sa.Column("zone_id", UUID(as_uuid=True), nullable=False),
        sa.Column("warehouse_id", UUID(as_uuid=True), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_movement_reason", sa.String(100), nullable=True),
        sa.Column("last_movement_reference", sa.String(100), nullable=True),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        sa.Column("updated_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("sku", "shelf_id", name="uq_placements_sku_shelf"),
        sa.CheckConstraint("quantity >= 0", name="ck_placements_quantity_non_negative"),
    )
    op.create_index("ix_placements_shelf_id", "placements", ["shelf_id"])

    op.create_table(
        "stock_movements",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("movement_type", sa.String(20), nullable=False),
        sa.Column("to_warehouse_id", UUID(as_uuid=True), nullable=True),
        sa.Column("to_zone_id", UUID(as_uuid=True), nullable=True),
        sa.Column("to_rack_id", UUID(as_uuid=True), nullable=True),
        sa.Column("to_shelf_id", UUID(as_uuid=True), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(100), nullable=True),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_stock_movements_sku", "stock_movements", ["sku"])

    # Append-only: no UPDATE or DELETE on the movement ledger
    op.execute("""
        CREATE OR REPLACE FUNCTION stock_movements_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'stock_movements is append-only';
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER stock_movements_no_update_delete
        BEFORE UPDATE OR DELETE ON stock_movements
        FOR EACH ROW EXECUTE FUNCTION stock_movements_append_only();
    """)

    op.create_table(
        "stock_units",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("store_id", sa.String(100), nullable=True),
        sa.Column("order_id", sa.String(100), nullable=True),
        sa.Column("grn_id", UUID(as_uuid=True), sa.ForeignKey("goods_receipt_notes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("put_away", sa.String(20), nullable=True),
        sa.Column("warehouse_id", UUID(as_uuid=True), nullable=True),
        sa.Column("zone_id", UUID(as_uuid=True), nullable=True),
        sa.Column("rack_id", UUID(as_uuid=True), nullable=True),
        sa.Column("shelf_id", UUID(as_uuid=True), sa.ForeignKey("shelves.id", ondelete="SET NULL"), nullable=True),
        sa.Column("placement_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_stock_units_sku", "stock_units", ["sku"])
    op.create_index("ix_stock_units_grn_id", "stock_units", ["grn_id"])
    op.create_index("ix_stock_units_put_away", "stock_units", ["put_away"])

    # ── Audit + counters ─────────────────────────────────────────────────────
    op.create_table(
        "audit_log",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=False),
        sa.Column("entity_name", sa.String(255), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("payload", JSONB(), nullable=True),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_audit_log_entity_type", "audit_log", ["entity_type"])
    op.create_index("ix_audit_log_entity_id", "audit_log", ["entity_id"])

    op.create_table(
        "counters",
        sa.Column("name", sa.String(50), primary_key=True),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("counters")
    op.drop_table("audit_log")
    op.drop_table("stock_units")
    op.execute("DROP TRIGGER IF EXISTS stock_movements_no_update_delete ON stock_movements")
    op.execute("DROP FUNCTION IF EXISTS stock_movements_append_only()")
    op.drop_table("stock_movements")
    op.drop_table("placements")
    op.drop_table("grn_placements")
    op.drop_table("grn_lines")
    op.drop_table("goods_receipt_notes")
    op.drop_table("purchase_order_lines")
    op.drop_table("purchase_orders")
    op.drop_table("parties")
    op.drop_table("shelves")
    op.drop_table("racks")
    op.drop_table("zones")
    op.drop_table("warehouses")
