# Overview: Bill-of-materials catalog; recipe definitions for finished goods.

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Bom, BomMaterial, InventoryItem, ProductionOrder
from ..numbers import round_cents
from ..validation import UNITS_OF_MEASURE, require_choice, require_id, require_quantity, require_text
from .concurrency import run_with_retry
from .inventory_service import InventoryLedger
from .repository import Repository

logger = logging.getLogger(__name__)

UNKNOWN_ITEM_NAME = "Unknown Item"


class BomCatalog:
    def __init__(self, inventory: InventoryLedger, session=None):
        self.inventory = inventory
        self._session = session
        self.boms = Repository(Bom, Bom.created_at.desc(), Bom.id.desc(), session=session)

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def list_boms(self) -> list[Bom]:
        return self.boms.all()

    def get_bom(self, bom_id: int) -> Bom:
        bom = self.boms.get(bom_id)
        if bom is None:
            raise NotFoundError(f"Bill of materials {bom_id} not found")
        return bom

    def _build_materials(self, materials) -> list[BomMaterial]:
        if not materials:
            raise ValidationError("A bill of materials needs at least one material")
        if not isinstance(materials, list):
            raise ValidationError("materials must be a list")

        built = []
        for idx, raw in enumerate(materials):
            if not isinstance(raw, dict):
                raise ValidationError(f"materials[{idx}] must be an object")
            item_id = require_id(raw.get("item_id"), f"materials[{idx}].item_id")
            quantity = require_quantity(raw.get("quantity"), f"materials[{idx}].quantity")

            # Display names come from the inventory snapshot; unresolved ids are kept
            item = self.inventory.items.find(item_id)
            unit = raw.get("unit_of_measure") or (item.unit_of_measure if item else "units")
            built.append(
                BomMaterial(
                    item_id=item_id,
                    name=item.name if item is not None else UNKNOWN_ITEM_NAME,
                    quantity=quantity,
                    unit_of_measure=require_choice(unit, UNITS_OF_MEASURE, "unit_of_measure"),
                )
            )
        return built

    def _check_finished_item(self, finished_item_id):
        if finished_item_id is None:
            return None
        finished_item_id = require_id(finished_item_id, "finished_item_id")
        if self.inventory.items.get(finished_item_id) is None:
            raise ValidationError(f"Finished item {finished_item_id} not found")
        return finished_item_id

    def create_bom(
        self,
        product_name: str,
        description: str | None = None,
        materials=None,
        finished_item_id: int | None = None,
    ) -> Bom:
        name = require_text(product_name, "product_name")
        built = self._build_materials(materials)
        finished_item_id = self._check_finished_item(finished_item_id)

        def _op():
            bom = Bom(
                product_name=name,
                description=(description or "").strip() or None,
                finished_item_id=finished_item_id,
            )
            bom.materials.extend(built)
            self.session.add(bom)
            self.session.commit()
            return bom

        bom = run_with_retry(_op, attempts=1, session=self.session)
        self.boms.invalidate()
        logger.info("Created BOM %s (%s) with %d materials", bom.id, bom.product_name, len(built))
        return bom

    def update_bom(
        self,
        bom_id: int,
        product_name: str,
        description: str | None = None,
        materials=None,
        finished_item_id: int | None = None,
    ) -> Bom:
        name = require_text(product_name, "product_name")
        finished_item_id = self._check_finished_item(finished_item_id)

        def _op():
            bom = self.get_bom(bom_id)
            built = self._build_materials(materials)
            bom.product_name = name
            bom.description = (description or "").strip() or None
            bom.finished_item_id = finished_item_id
            # Full replacement of the materials list
            bom.materials.clear()
            self.session.flush()
            bom.materials.extend(built)
            self.session.commit()
            return bom

        bom = run_with_retry(_op, attempts=1, session=self.session)
        self.boms.invalidate()
        return bom

    def delete_bom(self, bom_id: int) -> dict:
        """
        Delete a BOM. Production orders that still reference it are left as they
        are; the caller gets a warning instead of a refusal.
        """
        def _op():
            bom = self.get_bom(bom_id)
            in_use = (
                self.session.query(func.count(ProductionOrder.id))
                .filter(ProductionOrder.bom_id == bom.id)
                .scalar()
            ) or 0
            self.session.delete(bom)
            self.session.commit()
            return in_use

        in_use = run_with_retry(_op, attempts=1, session=self.session)
        self.boms.invalidate()

        warning = None
        if in_use:
            warning = (
                f"Bill of materials {bom_id} was referenced by {in_use} production order(s); "
                "they keep a dangling BOM reference"
            )
            logger.warning(warning)
        return {"deleted": True, "production_order_count": in_use, "warning": warning}

    def material_cost_cents(self, bom: Bom, quantity) -> int:
        """sum(material.quantity * quantity * purchase cost); unresolved items cost nothing."""
        quantity = Decimal(quantity)
        total = Decimal("0")
        for material in bom.materials:
            item = self.session.get(InventoryItem, material.item_id)
            if item is None:
                continue
            total += Decimal(material.quantity) * quantity * item.purchase_cost_cents
        return round_cents(total)
