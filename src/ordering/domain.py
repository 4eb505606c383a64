"""Ordering bounded context: carts, checkout, orders, settlement and points.

Everything that has to commit together at checkout (orders, the cart, the
points account, the discount redemption and the checkout attempt) lives in
this one domain so a single unit of work covers it.
"""

import os

from protean.domain import Domain

ordering = Domain(name="ordering")


def custom_setting(name, default=None):
    """Read a marketplace setting from `[custom]` in domain.toml.

    An environment variable of the same name wins over the file, cast to the
    type of the configured value.
    """
    custom = ordering.config.get("custom") or {}
    value = custom.get(name, default)
    override = os.environ.get(name)
    if override is None:
        return value
    if isinstance(value, bool):
        return override.lower() in ("1", "true", "yes")
    if isinstance(value, int):
        return int(override)
    if isinstance(value, float):
        return float(override)
    return override
