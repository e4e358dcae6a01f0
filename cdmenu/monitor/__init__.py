"""cdmenu terminal monitor — read-only presentation of engine snapshots.

Modules
-------
renderer
    ``StatusRenderer`` turns ``AggregateStatus`` into Rich renderables,
    and ``tooltip_text`` / ``tray_color`` produce the menu-bar summary.
"""
