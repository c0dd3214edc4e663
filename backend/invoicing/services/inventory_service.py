# Overview: Notification hook for stock-tracking collaborators.

from __future__ import annotations

import logging
from typing import Callable, Optional

from flask import Flask, current_app

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "invoicing.inventory_hook"

InventoryHook = Callable[[object], None]


def register_inventory_hook(app: Flask, hook: Optional[InventoryHook]) -> None:
    """
    Register a callable invoked with each newly created invoice after commit.

    Pass None to unregister. The hook receives the committed Invoice; items
    carrying an itemId reference the collaborator's stock records.
    """
    if hook is None:
        app.extensions.pop(_EXTENSION_KEY, None)
    else:
        app.extensions[_EXTENSION_KEY] = hook


def notify_invoice_created(invoice) -> bool:
    """
    Fire the hook. Failures are logged; the invoice stays committed.

    Returns True when a hook ran successfully.
    """
    hook = current_app.extensions.get(_EXTENSION_KEY)
    if hook is None:
        return False
    try:
        hook(invoice)
    except Exception:
        logger.exception("Inventory hook failed for invoice %s", invoice.id)
        return False
    return True
