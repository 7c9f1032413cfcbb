from visadesk.ui.widgets.service_table import ServiceTable, StatusBadge, StatusSummaryBar

__all__ = [
    "ServiceTable",
    "StatusBadge",
    "StatusSummaryBar",
]
