from .inventory import InventoryItem, InventoryAdjustment
from .manufacturing import Bom, BomMaterial, ProductionOrder
from .procurement import Supplier, PurchaseOrder, PurchaseOrderItem
from .sales import Customer, SalesOrder, SalesOrderItem
from .finance import FinancialTransaction
from .documents import DocumentSequence

__all__ = [
    'InventoryItem', 'InventoryAdjustment',
    'Bom', 'BomMaterial', 'ProductionOrder',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem',
    'Customer', 'SalesOrder', 'SalesOrderItem',
    'FinancialTransaction',
    'DocumentSequence',
]
