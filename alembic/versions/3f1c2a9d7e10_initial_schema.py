"""initial schema

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-19 09:12:41.118402

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="user"),
        sa.Column("can_login", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_user_username", "user", ["username"])
    op.create_index("ix_user_email", "user", ["email"], unique=True)

    op.create_table(
        "book",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("author", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("genre", sa.String(), nullable=True),
        sa.Column("isbn", sa.String(), nullable=True),
        sa.Column("price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_free", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cover_image_url", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("user.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_book_slug", "book", ["slug"], unique=True)

    op.create_table(
        "chapter",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("book.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("content", sa.String(), nullable=False, server_default=""),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_chapter_book_id", "chapter", ["book_id"])

    op.create_table(
        "cart",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_cart_user_id", "cart", ["user_id"], unique=True)

    op.create_table(
        "cartitem",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cart_id", sa.Integer(), sa.ForeignKey("cart.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("book.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("cart_id", "book_id"),
    )
    op.create_index("ix_cartitem_cart_id", "cartitem", ["cart_id"])

    op.create_table(
        "purchase",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("book.id"), nullable=True),
        sa.Column("amount_paid", sa.Float(), nullable=False),
        sa.Column("payment_method", sa.String(), nullable=False, server_default="nomba"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("transaction_id", sa.String(), nullable=False),
        sa.Column("payment_reference", sa.String(), nullable=True),
        sa.Column("gateway_data", sa.JSON(), nullable=True),
        sa.Column("purchased_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_purchase_user_id", "purchase", ["user_id"])
    op.create_index("ix_purchase_status", "purchase", ["status"])
    op.create_index("ix_purchase_transaction_id", "purchase", ["transaction_id"], unique=True)
    op.create_index("ix_purchase_payment_reference", "purchase", ["payment_reference"])

    op.create_table(
        "purchaseitem",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchase.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("book.id"), nullable=False),
        sa.Column("unit_price", sa.Float(), nullable=False, server_default="0"),
        sa.UniqueConstraint("purchase_id", "book_id"),
    )
    op.create_index("ix_purchaseitem_purchase_id", "purchaseitem", ["purchase_id"])
    op.create_index("ix_purchaseitem_book_id", "purchaseitem", ["book_id"])

    op.create_table(
        "userlibrary",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("book.id"), nullable=False),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchase.id"), nullable=True),
        sa.Column("is_free_book", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.Column("reading_status", sa.String(), nullable=False, server_default="not_started"),
        sa.Column("current_chapter", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_page", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reading_progress", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_read_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("user_id", "book_id", name="uq_userlibrary_user_book"),
    )
    op.create_index("ix_userlibrary_user_id", "userlibrary", ["user_id"])
    op.create_index("ix_userlibrary_book_id", "userlibrary", ["book_id"])

    op.create_table(
        "wishlist",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("book.id", ondelete="CASCADE"), nullable=False),
        sa.Column("notes", sa.String(length=200), nullable=True),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "book_id"),
    )


def downgrade():
    op.drop_table("wishlist")
    op.drop_index("ix_userlibrary_book_id", table_name="userlibrary")
    op.drop_index("ix_userlibrary_user_id", table_name="userlibrary")
    op.drop_table("userlibrary")
    op.drop_index("ix_purchaseitem_book_id", table_name="purchaseitem")
    op.drop_index("ix_purchaseitem_purchase_id", table_name="purchaseitem")
    op.drop_table("purchaseitem")
    op.drop_index("ix_purchase_payment_reference", table_name="purchase")
    op.drop_index("ix_purchase_transaction_id", table_name="purchase")
    op.drop_index("ix_purchase_status", table_name="purchase")
    op.drop_index("ix_purchase_user_id", table_name="purchase")
    op.drop_table("purchase")
    op.drop_index("ix_cartitem_cart_id", table_name="cartitem")
    op.drop_table("cartitem")
    op.drop_index("ix_cart_user_id", table_name="cart")
    op.drop_table("cart")
    op.drop_index("ix_chapter_book_id", table_name="chapter")
    op.drop_table("chapter")
    op.drop_index("ix_book_slug", table_name="book")
    op.drop_table("book")
    op.drop_index("ix_user_email", table_name="user")
    op.drop_index("ix_user_username", table_name="user")
    op.drop_table("user")
