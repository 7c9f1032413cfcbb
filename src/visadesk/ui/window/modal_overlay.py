from __future__ import annotations

from typing import Callable, Optional

from PySide6.QtCore import QEvent, QObject, Qt, Signal
from PySide6.QtGui import QColor, QKeyEvent, QPainter
from PySide6.QtWidgets import QFrame, QHBoxLayout, QLabel, QToolButton, QVBoxLayout, QWidget


class ModalTitleBar(QWidget):
    close_requested = Signal()

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setAttribute(Qt.WidgetAttribute.WA_StyledBackground, True)
        self.setObjectName("ModalTitleBar")
        self._title_label = QLabel(self)
        self._title_label.setObjectName("ModalTitleLabel")

        self.close_button = QToolButton(self)
        self.close_button.setObjectName("ModalCloseButton")
        self.close_button.setAutoRaise(True)
        self.close_button.setFixedSize(30, 24)
        self.close_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.close_button.setToolTip("Close")
        self.close_button.setText("x")

        layout = QHBoxLayout(self)
        layout.setContentsMargins(14, 10, 10, 10)
        layout.setSpacing(6)
        layout.addWidget(self._title_label)
        layout.addStretch(1)
        layout.addWidget(self.close_button)

        self.close_button.clicked.connect(self.close_requested.emit)

    def title(self) -> str:
        return self._title_label.text()

    def set_title(self, text: str) -> None:
        self._title_label.setText(text)


class ModalOverlay(QWidget):
    """Dimmed backdrop with a centered card, shown on top of ``host``.

    The overlay keeps no open/closed state of its own: the owner calls
    ``sync(visible)`` after every state change. The close button, a click
    on the backdrop and Escape all call the same close callback.
    """

    def __init__(
        self,
        host: QWidget,
        *,
        title: str = "",
        on_close: Callable[[], None] | None = None,
        card_width: int = 520,
    ) -> None:
        super().__init__(host)
        self._host = host
        self._on_close = on_close
        self._content: QWidget | None = None
        self._backdrop = QColor(10, 12, 16, 168)
        self.setObjectName("ModalOverlay")
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setVisible(False)

        self.card = QFrame(self)
        self.card.setObjectName("ModalOverlayCard")
        self.card.setFixedWidth(card_width)

        card_layout = QVBoxLayout(self.card)
        card_layout.setContentsMargins(0, 0, 0, 0)
        card_layout.setSpacing(0)

        self.title_bar = ModalTitleBar(self.card)
        self.title_bar.close_requested.connect(self.request_close)
        card_layout.addWidget(self.title_bar)

        self.body = QWidget(self.card)
        self.body.setObjectName("ModalBody")
        self.body_layout = QVBoxLayout(self.body)
        self.body_layout.setContentsMargins(16, 14, 16, 16)
        self.body_layout.setSpacing(10)
        card_layout.addWidget(self.body, 1)

        root = QVBoxLayout(self)
        root.setContentsMargins(24, 24, 24, 24)
        root.addStretch(1)
        root.addWidget(self.card, 0, Qt.AlignmentFlag.AlignHCenter)
        root.addStretch(1)

        self.set_title(title)
        host.installEventFilter(self)

    def set_title(self, title: str) -> None:
        self.title_bar.set_title(title)

    def set_content(self, widget: QWidget | None) -> None:
        previous = self._content
        if previous is widget:
            return
        if previous is not None:
            self.body_layout.removeWidget(previous)
            previous.hide()
            previous.setParent(None)
        self._content = widget
        if widget is not None:
            widget.setParent(self.body)
            self.body_layout.addWidget(widget)
            widget.show()

    def sync(self, visible: bool) -> None:
        if not visible:
            if self.isVisible():
                self.hide()
            return
        self.setGeometry(self._host.rect())
        if not self.isVisible():
            self.show()
            self.raise_()
            self.setFocus(Qt.FocusReason.OtherFocusReason)

    def request_close(self) -> None:
        callback = self._on_close
        if callback is not None:
            callback()

    def eventFilter(self, watched: QObject, event: QEvent) -> bool:
        if watched is self._host and event.type() == QEvent.Type.Resize and self.isVisible():
            self.setGeometry(self._host.rect())
        return super().eventFilter(watched, event)

    def mousePressEvent(self, event) -> None:
        if event.button() == Qt.MouseButton.LeftButton and not self.card.geometry().contains(
            event.position().toPoint()
        ):
            event.accept()
            self.request_close()
            return
        super().mousePressEvent(event)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        if event.key() == Qt.Key.Key_Escape:
            event.accept()
            self.request_close()
            return
        super().keyPressEvent(event)

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        painter.fillRect(self.rect(), self._backdrop)
