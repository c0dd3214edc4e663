from ..field_maps import INVOICE_FIELDS, PAYMENT_FIELDS, verify_field_map
from .tenancy import Tenant, Branch
from .customers import Customer
from .invoices import Invoice, Payment, InvoiceSequence
from .tax import TaxRate
from .events import LedgerEvent

verify_field_map(Invoice, INVOICE_FIELDS)
verify_field_map(Payment, PAYMENT_FIELDS)

__all__ = [
    'Tenant', 'Branch',
    'Customer',
    'Invoice', 'Payment', 'InvoiceSequence',
    'TaxRate',
    'LedgerEvent',
]
