"""SQLAlchemy models for the catalog sync service.

The relational store is the source of truth for supplier identity (families
and SKUs) and the local mirror of every dictionary. The services talk to these
tables through parameterized statements; the models define the schema and
drive Alembic.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""


# =============================================================================
# Dictionaries
# =============================================================================


class Metal(Base):
    """Metal lookup, seeded from the supplier metal codes."""

    __tablename__ = "metals"

    metal_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    image: Mapped[Optional[str]] = mapped_column(Text)


class Stone(Base):
    """Primary stone type lookup."""

    __tablename__ = "stones"

    stone_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, default="")


class Shape(Base):
    """Diamond shape dictionary."""

    __tablename__ = "shapes"

    shape_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    image: Mapped[Optional[str]] = mapped_column(Text)


class Style(Base):
    """Ring style dictionary."""

    __tablename__ = "styles"

    style_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    image: Mapped[Optional[str]] = mapped_column(Text)


class Gender(Base):
    """Gender lookup."""

    __tablename__ = "genders"

    gender_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


class AttributeGroup(Base):
    """Named grouping dimension, mirrored as the remote "Group Name" choices."""

    __tablename__ = "attribute_groups"

    group_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class Category(Base):
    """Local mirror of a remote custom collection."""

    __tablename__ = "categories"

    category_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    remote_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


class WebCategory(Base):
    """Supplier web-category tag. The primary key is the supplier's id."""

    __tablename__ = "web_categories"

    web_cat_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    path: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    image_url: Mapped[Optional[str]] = mapped_column(Text)


# =============================================================================
# Rings and Variations
# =============================================================================


class Ring(Base):
    """One supplier product family."""

    __tablename__ = "rings"

    ring_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supplier_group_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    group_id: Mapped[Optional[int]] = mapped_column(ForeignKey("attribute_groups.group_id"))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.category_id"))
    style_id: Mapped[Optional[int]] = mapped_column(ForeignKey("styles.style_id"))
    gender_id: Mapped[Optional[int]] = mapped_column(ForeignKey("genders.gender_id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class RingWebCategory(Base):
    """Membership of a ring in a supplier web category."""

    __tablename__ = "ring_web_categories"

    ring_id: Mapped[int] = mapped_column(ForeignKey("rings.ring_id"), primary_key=True)
    web_cat_id: Mapped[int] = mapped_column(
        ForeignKey("web_categories.web_cat_id"), primary_key=True
    )


class RingVariation(Base):
    """One sellable supplier SKU and its remote sync state.

    ``sync_id`` empty means the variation was never pushed and ``sync`` must be
    false. A non-empty ``sync_id`` points at a remote product that exists,
    active when ``sync`` is true and archived otherwise.
    """

    __tablename__ = "ring_variations"

    variation_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ring_id: Mapped[int] = mapped_column(ForeignKey("rings.ring_id"), nullable=False)
    metal_id: Mapped[int] = mapped_column(ForeignKey("metals.metal_id"), nullable=False)
    stone_id: Mapped[int] = mapped_column(ForeignKey("stones.stone_id"), nullable=False)

    # Supplier-sourced fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    sku: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    supplier_product_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    group_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    supplier_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    supplier_showcase_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    ring_size: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    lead_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    on_hand: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    orderable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    currency_code: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    band_width: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    stone_type: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    quality: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    set_with: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    # Editable fields
    diamonds: Mapped[Optional[str]] = mapped_column(Text)
    style_label: Mapped[Optional[str]] = mapped_column(String(255))

    # Remote sync state
    sync: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    variant_sync_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_ring_variations_ring", "ring_id"),
        Index("ix_ring_variations_sync", "sync", "sync_id"),
    )


# =============================================================================
# Status Tracking
# =============================================================================


class SyncStatus(Base):
    """Track job run status (reconciliation, cleanup, category sync)."""

    __tablename__ = "sync_status"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    records_synced: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(50), default="idle")  # idle, running, error
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


class AppStatusEvent(Base):
    """Failure log written for every error returned to a caller."""

    __tablename__ = "app_status_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_app_status_events_created", "created_at"),)
