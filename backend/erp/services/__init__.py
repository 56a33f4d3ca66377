# Overview: Request-scoped ledger registry wiring the services together.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, g

from .bom_service import BomCatalog
from .finance_service import FinancialLedger
from .inventory_service import InventoryLedger
from .procurement_service import ProcurementLedger
from .production_service import ProductionWorkflow
from .reporting_service import ReportingService
from .sales_service import SalesLedger


@dataclass
class Ledgers:
    inventory: InventoryLedger
    boms: BomCatalog
    production: ProductionWorkflow
    procurement: ProcurementLedger
    sales: SalesLedger
    finance: FinancialLedger
    reports: ReportingService


def build_ledgers(config=None, session=None) -> Ledgers:
    """Wire one set of ledgers sharing a session (defaults to db.session)."""
    config = config if config is not None else {}
    inventory = InventoryLedger(session=session)
    finance = FinancialLedger(session=session)
    boms = BomCatalog(inventory, session=session)
    return Ledgers(
        inventory=inventory,
        boms=boms,
        production=ProductionWorkflow(
            inventory,
            boms,
            finance,
            consume_materials=bool(config.get("PRODUCTION_CONSUME_MATERIALS", False)),
            session=session,
        ),
        procurement=ProcurementLedger(inventory, finance, session=session),
        sales=SalesLedger(inventory, finance, session=session),
        finance=finance,
        reports=ReportingService(inventory, finance, session=session),
    )


def get_ledgers() -> Ledgers:
    """Ledgers for the current request, created on first use."""
    ledgers = getattr(g, "erp_ledgers", None)
    if ledgers is None:
        ledgers = build_ledgers(current_app.config)
        g.erp_ledgers = ledgers
    return ledgers


__all__ = [
    "BomCatalog",
    "FinancialLedger",
    "InventoryLedger",
    "Ledgers",
    "ProcurementLedger",
    "ProductionWorkflow",
    "ReportingService",
    "SalesLedger",
    "build_ledgers",
    "get_ledgers",
]
