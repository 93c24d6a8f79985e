"""
Inventory snapshots for Anti-Xray alerts
"""

from typing import List

MAX_ITEMS = 10


def get_item_type_id(item, fallback: str = "minecraft:air") -> str:
    """Best-effort conversion of ItemType/ItemStack/object to namespaced item id."""
    try:
        item_type = item.type if hasattr(item, "type") else item
        if hasattr(item_type, "id"):
            item_id = str(item_type.id).lower()
        else:
            item_id = str(item_type).lower()
        if not item_id:
            return fallback
        if ":" not in item_id:
            item_id = f"minecraft:{item_id}"
        return item_id
    except Exception:
        return fallback


def _inventory_items(inventory) -> List:
    contents = getattr(inventory, "contents", None)
    if contents is not None:
        return list(contents)
    size = int(getattr(inventory, "size", 0))
    return [inventory.get_item(slot) for slot in range(size)]


def describe_inventory(inventory, max_items: int = MAX_ITEMS) -> str:
    """One line per non-empty stack, e.g. "minecraft:diamond x12"."""
    lines: List[str] = []
    for stack in _inventory_items(inventory):
        if stack is None:
            continue
        item_id = get_item_type_id(stack)
        amount = int(getattr(stack, "amount", 1) or 0)
        if item_id == "minecraft:air" or amount <= 0:
            continue
        if len(lines) >= max_items:
            lines.append("...(more items not shown)")
            break
        lines.append(f"{item_id} x{amount}" if amount > 1 else item_id)

    if not lines:
        return "No items found"
    return "\n".join(lines)
