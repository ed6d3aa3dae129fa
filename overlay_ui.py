from __future__ import annotations

from collections import deque
from typing import Optional

from PyQt6.QtCore import QPoint, Qt, pyqtSignal
from PyQt6.QtGui import QFont, QGuiApplication
from PyQt6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QFrame,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QSizeGrip,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)

from coach_session import parse_coach_hint
from config_utils import read_int_env

TAB_LABELS = {"uk": "UKR", "en": "ENG", "ru": "RUS", "same": "AUTO"}


class AssistPanelWindow(QWidget):
    DRAG_ZONE_HEIGHT = 56
    DEFAULT_MAX_TRANSLATIONS = 8
    MONOSPACE_FONT_FAMILIES = ["Menlo", "Consolas", "Courier New", "Monospace"]
    PANEL_POSITIONS = ("left", "center", "right")
    SCREEN_MARGIN = 24

    coach_tab_selected = pyqtSignal(str)
    enabled_toggled = pyqtSignal(bool)
    coach_toggled = pyqtSignal(bool)
    target_language_changed = pyqtSignal(str)
    hide_requested = pyqtSignal()

    def __init__(self, tab_variants: tuple[str, ...] = ("uk", "en")) -> None:
        super().__init__()
        self._drag_offset: Optional[QPoint] = None
        self._tab_variants = tab_variants
        self._active_tab = tab_variants[0] if tab_variants else "same"
        max_items = read_int_env("MAX_TRANSLATION_ITEMS", self.DEFAULT_MAX_TRANSLATIONS)
        self.translations: deque[tuple[str, str, bool]] = deque(maxlen=max(1, max_items))
        self.coach_question = ""
        self.coach_text = ""
        self.status_is_error = False
        self.panel_position = "right"

        self._build_ui()
        self._apply_window_style()

    @property
    def active_tab(self) -> str:
        return self._active_tab

    def set_status(self, text: str, is_error: bool = False) -> None:
        self.status_is_error = is_error
        self.status_label.setText(text)
        self.status_label.setProperty("error", is_error)
        self.status_label.setStyleSheet("color: #ff8a80;" if is_error else "")

    def show_coach_hint(self, question: str, hint: str) -> None:
        self.coach_question = question
        self.coach_text = hint
        self.coach_question_label.setText(question)
        self.coach_question_label.setVisible(bool(question))
        self.coach_view.setPlainText(self._render_hint(hint))

    def set_coach_tabs_visible(self, visible: bool) -> None:
        self.tabs_row.setVisible(visible)

    def set_active_coach_tab(self, variant: str) -> None:
        self._active_tab = variant
        for tab_variant, button in self.tab_buttons.items():
            button.blockSignals(True)
            button.setChecked(tab_variant == variant)
            button.blockSignals(False)

    def add_translation(self, source: str, translated: str, cached: bool) -> None:
        self.translations.appendleft((source, translated, cached))
        self._render_translations()

    def clear_translations(self) -> None:
        self.translations.clear()
        self._render_translations()

    def set_panel_visible(self, visible: bool) -> None:
        if visible:
            self.show()
        else:
            self.hide()

    def apply_panel_position(self, position: str) -> str:
        """Dock the panel to the left, center or right of the primary screen's top edge."""
        normalized = position if position in self.PANEL_POSITIONS else "right"
        self.panel_position = normalized
        screen = QGuiApplication.primaryScreen()
        if screen is None:
            return normalized
        area = screen.availableGeometry()
        if normalized == "left":
            x = area.left() + self.SCREEN_MARGIN
        elif normalized == "center":
            x = area.left() + (area.width() - self.width()) // 2
        else:
            x = area.right() - self.width() - self.SCREEN_MARGIN
        self.move(x, area.top() + self.SCREEN_MARGIN)
        return normalized

    def sync_settings(self, enabled: bool, coach_enabled: bool, target_language: str) -> None:
        for checkbox, value in ((self.enabled_checkbox, enabled), (self.coach_checkbox, coach_enabled)):
            checkbox.blockSignals(True)
            checkbox.setChecked(value)
            checkbox.blockSignals(False)
        index = self.language_select.findData(target_language)
        if index >= 0:
            self.language_select.blockSignals(True)
            self.language_select.setCurrentIndex(index)
            self.language_select.blockSignals(False)

    def _build_ui(self) -> None:
        root = QVBoxLayout(self)
        root.setContentsMargins(6, 6, 6, 6)

        panel = QFrame()
        panel.setObjectName("assistPanel")
        root.addWidget(panel)

        layout = QVBoxLayout(panel)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(8)

        controls = QHBoxLayout()
        controls.setSpacing(6)
        layout.addLayout(controls)

        self.enabled_checkbox = QCheckBox("Translate")
        self.enabled_checkbox.setChecked(True)
        self.enabled_checkbox.stateChanged.connect(
            lambda state: self.enabled_toggled.emit(state == Qt.CheckState.Checked.value)
        )
        controls.addWidget(self.enabled_checkbox)

        self.coach_checkbox = QCheckBox("Coach")
        self.coach_checkbox.setChecked(True)
        self.coach_checkbox.stateChanged.connect(
            lambda state: self.coach_toggled.emit(state == Qt.CheckState.Checked.value)
        )
        controls.addWidget(self.coach_checkbox)

        self.language_select = QComboBox()
        self.language_select.addItem("UK", "uk")
        self.language_select.addItem("RU", "ru")
        self.language_select.currentIndexChanged.connect(
            lambda _index: self.target_language_changed.emit(str(self.language_select.currentData()))
        )
        controls.addWidget(self.language_select)
        controls.addStretch(1)

        hide_button = QPushButton("Hide")
        hide_button.clicked.connect(self.hide_requested.emit)
        controls.addWidget(hide_button)

        coach_box = QFrame()
        coach_box.setObjectName("coachBox")
        coach_layout = QVBoxLayout(coach_box)
        coach_layout.setContentsMargins(12, 10, 12, 10)
        coach_layout.setSpacing(6)

        self.tabs_row = QWidget()
        tabs_layout = QHBoxLayout(self.tabs_row)
        tabs_layout.setContentsMargins(0, 0, 0, 0)
        tabs_layout.setSpacing(4)
        self.tab_buttons: dict[str, QPushButton] = {}
        for variant in self._tab_variants:
            button = QPushButton(TAB_LABELS.get(variant, variant.upper()))
            button.setCheckable(True)
            button.setChecked(variant == self._active_tab)
            button.clicked.connect(lambda _checked, value=variant: self._on_tab_clicked(value))
            tabs_layout.addWidget(button)
            self.tab_buttons[variant] = button
        tabs_layout.addStretch(1)
        self.tabs_row.hide()
        coach_layout.addWidget(self.tabs_row)

        self.coach_question_label = QLabel("")
        self.coach_question_label.setObjectName("coachQuestion")
        self.coach_question_label.setWordWrap(True)
        self.coach_question_label.hide()
        coach_layout.addWidget(self.coach_question_label)

        self.coach_view = QTextEdit()
        self.coach_view.setReadOnly(True)
        self.coach_view.setAcceptRichText(False)
        self.coach_view.setLineWrapMode(QTextEdit.LineWrapMode.WidgetWidth)
        coach_layout.addWidget(self.coach_view)
        layout.addWidget(coach_box)

        self.translation_view = QTextEdit()
        self.translation_view.setReadOnly(True)
        self.translation_view.setAcceptRichText(False)
        self.translation_view.setLineWrapMode(QTextEdit.LineWrapMode.WidgetWidth)
        self.translation_view.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAsNeeded)
        layout.addWidget(self.translation_view)

        self.status_label = QLabel("Idle")
        status_row = QHBoxLayout()
        status_row.addWidget(self.status_label)
        status_row.addStretch(1)
        self.size_grip = QSizeGrip(panel)
        status_row.addWidget(self.size_grip, alignment=Qt.AlignmentFlag.AlignBottom | Qt.AlignmentFlag.AlignRight)
        layout.addLayout(status_row)

        font_size = read_int_env("OVERLAY_FONT_SIZE", 15)
        self.coach_view.setFont(self._make_monospace_font(font_size))
        self.translation_view.setFont(self._make_monospace_font(max(11, font_size - 2)))
        self.coach_question_label.setFont(self._make_monospace_font(max(11, font_size - 2), bold=True))

    def _apply_window_style(self) -> None:
        self.setWindowTitle("Meeting Caption Assist")
        self.setWindowFlags(
            Qt.WindowType.FramelessWindowHint
            | Qt.WindowType.WindowStaysOnTopHint
            | Qt.WindowType.Tool
        )
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating, True)
        self.setMinimumSize(420, 320)
        self.resize(520, 560)

        self.setStyleSheet(
            """
            #assistPanel {
                background-color: rgba(28, 28, 28, 200);
                border: 1px solid rgba(255, 255, 255, 48);
                border-radius: 12px;
            }
            #coachBox {
                background-color: rgba(0, 0, 0, 170);
                border: 1px solid rgba(255, 255, 255, 32);
                border-radius: 10px;
            }
            #coachQuestion {
                color: rgba(255, 255, 255, 185);
            }
            QTextEdit {
                background-color: rgba(43, 43, 43, 0);
                color: white;
                border: none;
                padding: 6px;
            }
            QLabel, QCheckBox {
                color: white;
            }
            QPushButton {
                background-color: rgba(70, 70, 70, 220);
                color: white;
                border: 1px solid rgba(255, 255, 255, 50);
                border-radius: 8px;
                padding: 5px 9px;
            }
            QPushButton:hover {
                background-color: rgba(88, 88, 88, 220);
            }
            QPushButton:checked {
                background-color: rgba(46, 125, 50, 230);
            }
            """
        )

    def _on_tab_clicked(self, variant: str) -> None:
        self.set_active_coach_tab(variant)
        self.coach_tab_selected.emit(variant)

    def _render_translations(self) -> None:
        blocks = []
        for source, translated, cached in self.translations:
            marker = "cache" if cached else "live"
            blocks.append(f"[{marker}] {translated}\n    {source}")
        self.translation_view.setPlainText("\n\n".join(blocks))

    @staticmethod
    def _render_hint(text: str) -> str:
        hint = parse_coach_hint(text)
        if not hint.structured:
            return hint.raw
        lines = [f"Keywords: {hint.keywords}", f"Answer: {hint.answer}"]
        if hint.example:
            lines.append(f"Example: {hint.example}")
        return "\n".join(lines)

    def mousePressEvent(self, event) -> None:  # noqa: N802 - Qt override naming
        if event.button() == Qt.MouseButton.LeftButton:
            local_pos = event.position().toPoint()
            if local_pos.y() <= self.DRAG_ZONE_HEIGHT:
                self._drag_offset = event.globalPosition().toPoint() - self.frameGeometry().topLeft()
                event.accept()

    def mouseMoveEvent(self, event) -> None:  # noqa: N802 - Qt override naming
        if self._drag_offset is not None and event.buttons() & Qt.MouseButton.LeftButton:
            self.move(event.globalPosition().toPoint() - self._drag_offset)
            event.accept()

    def mouseReleaseEvent(self, event) -> None:  # noqa: N802 - Qt override naming
        self._drag_offset = None
        event.accept()

    @classmethod
    def _make_monospace_font(cls, point_size: int, bold: bool = False) -> QFont:
        font = QFont()
        font.setFamilies(cls.MONOSPACE_FONT_FAMILIES)
        font.setStyleHint(QFont.StyleHint.Monospace)
        font.setPointSize(point_size)
        font.setBold(bold)
        return font
