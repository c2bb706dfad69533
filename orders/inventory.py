"""
Inventory restoration for cancelled orders.

Stock is decremented when an order is placed; these helpers only ever put it
back. The functions are pure so the same update can be computed inside a
Firestore transaction or against an in-memory product.
"""
import logging
from collections import defaultdict

logger = logging.getLogger(__name__)


def group_restorable_items(items):
    """
    Groups order items by product id, dropping manual entries and items
    without a positive quantity.
    """
    grouped = defaultdict(list)
    for item in items:
        if item.is_manual:
            logger.info(f"Skipping inventory restore for manual item {item.product_id or '<empty>'}")
            continue
        if item.quantity <= 0:
            logger.warning(f"Skipping item {item.product_id} with non-positive quantity {item.quantity}")
            continue
        grouped[item.product_id].append(item)
    return dict(grouped)


def build_restock_update(product_id, product_data, items):
    """
    Computes the fields to write back to a product document.

    Simple items add to `stock`. Variant items also add to the matching
    variant's `stock`. `totalStock` moves with `stock` whenever the product
    tracks it. Returns None when there is nothing to write.
    """
    variants = [dict(variant) for variant in product_data.get('variants') or []]
    stock_delta = 0
    variants_changed = False

    for item in items:
        if not item.variant_id:
            stock_delta += item.quantity
            logger.info(f"Restoring {item.quantity} units to product {product_id}")
            continue

        variant = next((v for v in variants if v.get('id') == item.variant_id), None)
        if variant is None:
            logger.warning(f"Variant {item.variant_id} not found in product {product_id}")
            continue

        variant['stock'] = (variant.get('stock') or 0) + item.quantity
        variants_changed = True
        stock_delta += item.quantity
        logger.info(f"Restoring {item.quantity} units to product {product_id} variant {item.variant_id}")

    if stock_delta == 0:
        return None

    update = {'stock': (product_data.get('stock') or 0) + stock_delta}
    if variants_changed:
        update['variants'] = variants
    if 'totalStock' in product_data:
        update['totalStock'] = (product_data.get('totalStock') or 0) + stock_delta
    return update
