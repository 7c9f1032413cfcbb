from __future__ import annotations

from visadesk.ui.window.modal_overlay import ModalOverlay, ModalTitleBar

__all__ = [
    "ModalOverlay",
    "ModalTitleBar",
]
