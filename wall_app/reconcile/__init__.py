"""
Reconciliation feature package.

Registers the ``reconcile`` CLI group and records the engine's state inside
``app.extensions['reconcile']``. The group is replaced by a stub when
``RECONCILE_ENABLED`` is false.
"""

from __future__ import annotations

from flask import Flask

from wall_app.utils.reconcile import is_reconcile_enabled

from .cli import get_disabled_reconcile_group, reconcile_cli
from .state import RECONCILE_EXTENSION_KEY, ensure_extension_state, get_profile, get_record_filter, get_store, set_store
from .store import get_store_registry

__all__ = [
    "RECONCILE_EXTENSION_KEY",
    "get_profile",
    "get_record_filter",
    "get_store",
    "init_reconcile",
    "set_store",
]


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    command_name = reconcile_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(reconcile_cli)
    else:
        app.cli.add_command(get_disabled_reconcile_group())


def init_reconcile(app: Flask) -> None:
    """
    Conditionally mount the reconciliation CLI based on configuration.

    The configured store name is validated here so a typo fails at start-up
    rather than in the middle of an operator's run.
    """
    enabled = is_reconcile_enabled(app)
    state = ensure_extension_state(app)
    state["enabled"] = enabled

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Reconciliation disabled via RECONCILE_ENABLED flag; skipping registration.")
        return

    store_name = str(app.config.get("RECONCILE_STORE") or "").strip().lower()
    if store_name not in get_store_registry():
        raise ValueError(
            f"Unknown document store configured: {store_name}. "
            "Set RECONCILE_STORE to one of: " + ", ".join(get_store_registry())
        )

    _set_cli(app, enabled=True)
    app.logger.info(
        "Reconciliation enabled",
        extra={
            "reconcile_store": store_name,
            "reconcile_collection": app.config.get("RECONCILE_COLLECTION"),
        },
    )
