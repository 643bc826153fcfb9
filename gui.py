"""
Elden Ring Seamless Co-op Manager - GUI (PySide6)
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt, QThread, QTimer, Signal, QSettings, QUrl
from PySide6.QtGui import QDesktopServices, QFont
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QScrollArea,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from coop_settings import Setting, SettingKind
from errors import ManagerError
from install_locator import InstallationDirectory, autodetect_install_dir
from release_cache import ReleaseCache
from release_catalog import MANAGER_RELEASES_PAGE
from release_manager import ReleaseManager
from version import __version__

# ── Worker Thread ─────────────────────────────────────────────────────

class WorkerThread(QThread):
    """Run a blocking operation off the main thread."""

    finished_signal = Signal(bool, str)  # success, message

    def __init__(self, func, *args, **kwargs):
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self):
        try:
            result = self.func(*self.args, **self.kwargs)
            if isinstance(result, tuple) and len(result) == 2:
                self.finished_signal.emit(result[0], result[1])
            else:
                self.finished_signal.emit(True, "Done")
        except Exception as e:
            self.finished_signal.emit(False, str(e))


def _probe_self_update() -> tuple[bool, str]:
    newer = ReleaseManager.check_self_update(__version__)
    return (newer is not None, newer.tag if newer else "")


# ── Co-op Settings Dialog ─────────────────────────────────────────────

class CoopSettingsDialog(QDialog):
    """Editor for the current co-op settings file.

    Widgets are picked from each setting's guessed kind; the guess comes
    from free-text comments, so it can be wrong.
    """

    def __init__(self, settings: list[Setting], parent=None):
        super().__init__(parent)
        self.setWindowTitle("Seamless Co-op Settings")
        self.setMinimumSize(480, 520)

        self._settings = settings
        self._widgets: list[tuple[Setting, QWidget]] = []

        layout = QVBoxLayout(self)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        body = QWidget()
        body_layout = QVBoxLayout(body)

        groups: dict[str, QFormLayout] = {}
        for setting in settings:
            form = groups.get(setting.section)
            if form is None:
                box = QGroupBox(setting.section or "General")
                form = QFormLayout(box)
                groups[setting.section] = form
                body_layout.addWidget(box)

            widget = self._make_widget(setting)
            widget.setToolTip(setting.help)
            label = QLabel(setting.name)
            label.setToolTip(setting.help)
            form.addRow(label, widget)
            self._widgets.append((setting, widget))

        body_layout.addStretch()
        scroll.setWidget(body)
        layout.addWidget(scroll)

        buttons = QDialogButtonBox(QDialogButtonBox.Save | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    @staticmethod
    def _make_widget(setting: Setting) -> QWidget:
        if setting.kind == SettingKind.BOOLEAN:
            box = QCheckBox()
            box.setChecked(setting.value.strip() not in ("", "0"))
            return box
        edit = QLineEdit(setting.value)
        if setting.kind == SettingKind.PASSWORD:
            edit.setEchoMode(QLineEdit.Password)
        elif setting.kind == SettingKind.NUMBER:
            edit.setMaximumWidth(120)
        return edit

    def changed_values(self) -> dict[tuple[str, str], str]:
        changed = {}
        for setting, widget in self._widgets:
            if isinstance(widget, QCheckBox):
                value = "1" if widget.isChecked() else "0"
            else:
                value = widget.text().strip()
            if value != setting.value:
                changed[(setting.section, setting.name)] = value
        return changed


# ── Main Window ───────────────────────────────────────────────────────

class MainWindow(QMainWindow):
    # Signal used to safely append log messages from background threads.
    # Qt automatically queues cross-thread signal emissions to the main thread.
    _log_message = Signal(str)

    def __init__(
        self,
        logger: logging.Logger | None = None,
        *,
        install_dir_override: str | None = None,
        cache_dir: str | None = None,
        settings_org: str = "ERSCoopManager",
        settings_app: str = "ERSCoopManager",
        persist_settings: bool = True,
        check_updates: bool = True,
    ):
        super().__init__()
        self._logger = logger or logging.getLogger("erscom")
        self.setWindowTitle(f"Elden Ring Seamless Co-op Manager  v{__version__}")
        self.setMinimumSize(760, 560)

        # Settings persistence
        self._persist_settings = persist_settings
        self.settings = QSettings(settings_org, settings_app)
        located = install_dir_override or self.settings.value("install_dir", "", type=str)

        self.worker: Optional[WorkerThread] = None
        self.update_worker: Optional[WorkerThread] = None
        self._releases_loaded = False

        self._build_ui()
        self._log_message.connect(self.log_text.appendPlainText)

        if located:
            install_dir = InstallationDirectory(Path(located))
            self._append_log(f"Using configured install directory: {install_dir}")
        else:
            install_dir = autodetect_install_dir()
        self.manager = ReleaseManager(
            install_dir,
            cache=ReleaseCache(cache_dir),
            log_callback=self._append_log,
        )

        self._update_view()
        self._refresh()
        if check_updates:
            self._start_update_check()

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QVBoxLayout(central)

        self.update_label = QLabel()
        self.update_label.setVisible(False)
        self.update_label.setTextFormat(Qt.RichText)
        self.update_label.linkActivated.connect(self._open_url)
        main_layout.addWidget(self.update_label)

        # ── Install box ───────────────────────────────────────────────
        install_box = QGroupBox("Seamless Co-op")
        form = QFormLayout(install_box)

        path_row = QHBoxLayout()
        self.path_label = QLabel()
        self.path_label.setTextInteractionFlags(Qt.TextSelectableByMouse)
        path_row.addWidget(self.path_label, 1)
        self.locate_btn = QPushButton("Locate...")
        self.locate_btn.clicked.connect(self._locate)
        path_row.addWidget(self.locate_btn)
        form.addRow("Path:", path_row)

        self.current_label = QLabel()
        form.addRow("Current Version:", self.current_label)

        version_row = QHBoxLayout()
        self.version_combo = QComboBox()
        self.version_combo.currentIndexChanged.connect(self._on_version_changed)
        version_row.addWidget(self.version_combo, 1)
        self.install_btn = QPushButton("Install")
        self.install_btn.setMinimumWidth(130)
        self.install_btn.clicked.connect(self._install_selected)
        version_row.addWidget(self.install_btn)
        self.uninstall_btn = QPushButton("Uninstall")
        self.uninstall_btn.clicked.connect(self._uninstall_selected)
        version_row.addWidget(self.uninstall_btn)
        form.addRow("New Version:", version_row)

        password_row = QHBoxLayout()
        self.password_edit = QLineEdit()
        self.password_edit.setEchoMode(QLineEdit.Password)
        password_row.addWidget(self.password_edit, 1)
        self.show_password_box = QCheckBox("Show")
        self.show_password_box.toggled.connect(
            lambda on: self.password_edit.setEchoMode(
                QLineEdit.Normal if on else QLineEdit.Password
            )
        )
        password_row.addWidget(self.show_password_box)
        self.save_password_btn = QPushButton("Save Password")
        self.save_password_btn.clicked.connect(self._save_password)
        password_row.addWidget(self.save_password_btn)
        form.addRow("Co-op Password:", password_row)

        action_row = QHBoxLayout()
        self.launch_btn = QPushButton("Launch")
        self.launch_btn.clicked.connect(self._launch)
        action_row.addWidget(self.launch_btn)
        self.coop_settings_btn = QPushButton("Co-op Settings...")
        self.coop_settings_btn.clicked.connect(self._edit_coop_settings)
        action_row.addWidget(self.coop_settings_btn)
        action_row.addStretch()
        self.refresh_btn = QPushButton("Refresh")
        self.refresh_btn.clicked.connect(self._refresh)
        action_row.addWidget(self.refresh_btn)
        form.addRow(action_row)

        main_layout.addWidget(install_box)

        # ── Splitter: changelog | log ─────────────────────────────────
        splitter = QSplitter(Qt.Vertical)

        self.changelog_text = QPlainTextEdit()
        self.changelog_text.setReadOnly(True)
        changelog_box = QGroupBox("Changelog")
        QVBoxLayout(changelog_box).addWidget(self.changelog_text)
        splitter.addWidget(changelog_box)

        self.log_text = QPlainTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setFont(QFont("Consolas", 9))
        self.log_text.setMaximumBlockCount(5000)
        log_box = QGroupBox("Log")
        QVBoxLayout(log_box).addWidget(self.log_text)
        splitter.addWidget(log_box)

        splitter.setChildrenCollapsible(False)
        splitter.setSizes([260, 140])
        main_layout.addWidget(splitter, 1)

        # ── Progress bar ──────────────────────────────────────────────
        self.progress = QProgressBar()
        self.progress.setVisible(False)
        self.progress.setRange(0, 0)  # indeterminate
        main_layout.addWidget(self.progress)

    # ── Logging ───────────────────────────────────────────────────────

    def _append_log(self, msg: str):
        self._logger.info(msg)
        self._log_message.emit(msg)  # thread-safe: Qt queues this to the main thread

    # ── View ──────────────────────────────────────────────────────────

    def _update_view(self):
        manager = self.manager
        self.path_label.setText(manager.install_path_text or "<Not Found>")
        self.current_label.setText(manager.current_version_text or "<Unknown>")

        selected = self.version_combo.currentIndex()
        self.version_combo.blockSignals(True)
        self.version_combo.clear()
        self.version_combo.addItems(manager.available_versions())
        if selected < 0 or selected >= self.version_combo.count():
            selected = max(manager.current_index, 0)
        self.version_combo.setCurrentIndex(selected)
        self.version_combo.blockSignals(False)
        self._on_version_changed(selected)

        password = manager.password
        self.password_edit.setText(password or "")
        self.password_edit.setPlaceholderText(
            "" if password is not None else "No co-op settings file found"
        )
        self._update_buttons()

    def _update_buttons(self):
        busy = self.progress.isVisible()
        can_modify = self.manager.can_modify and not busy
        has_release = self.version_combo.currentIndex() >= 0
        self.install_btn.setEnabled(can_modify and has_release)
        self.uninstall_btn.setEnabled(can_modify and has_release)
        self.launch_btn.setEnabled(can_modify)
        self.save_password_btn.setEnabled(can_modify)
        self.coop_settings_btn.setEnabled(can_modify)
        self.locate_btn.setEnabled(not busy)
        self.refresh_btn.setEnabled(not busy)

    def _on_version_changed(self, index: int):
        self.changelog_text.setPlainText(self.manager.changelog_at(index))
        selected = self.manager.version_at(index)
        current = self.manager.current_version_text
        self.install_btn.setText("Reinstall" if selected and selected == current else "Install")

    # ── Actions ───────────────────────────────────────────────────────

    def _refresh(self):
        self._run_in_worker(self.manager.refresh, on_finished=self._on_refresh_finished)

    def _on_refresh_finished(self, success: bool, message: str) -> bool:
        if success:
            self._releases_loaded = True
            return False
        if not self._releases_loaded:
            # Without a release list there is nothing to do but quit
            self._fatal_error(message)
            return True
        return False

    def _install_selected(self):
        index = self.version_combo.currentIndex()
        tag = self.manager.version_at(index)
        if not tag:
            return
        self._run_in_worker(self.manager.install, index)

    def _uninstall_selected(self):
        index = self.version_combo.currentIndex()
        tag = self.manager.version_at(index)
        if not tag:
            return
        reply = QMessageBox.question(
            self,
            "Confirm Uninstall",
            f"Remove the files of Seamless Co-op {tag} from the game directory?\n\n"
            "Your settings files are kept.",
            QMessageBox.Yes | QMessageBox.No,
        )
        if reply != QMessageBox.Yes:
            return
        self._run_in_worker(self.manager.uninstall, index)

    def _save_password(self):
        self._run_in_worker(self.manager.set_password, self.password_edit.text())

    def _launch(self):
        success, message = self.manager.launch()
        self._on_worker_finished(success, message)

    def _locate(self):
        d = QFileDialog.getExistingDirectory(self, "Select the ELDEN RING Directory")
        if not d:
            return
        install_dir = InstallationDirectory(Path(d))
        try:
            install_dir.validate()
        except ManagerError as e:
            QMessageBox.warning(self, "Not an Elden Ring Directory", str(e))
            return
        if self._persist_settings:
            self.settings.setValue("install_dir", d)
        self._run_in_worker(self.manager.set_install_dir, install_dir)

    def _edit_coop_settings(self):
        self._run_in_worker(
            self.manager.load_coop_settings, on_finished=self._on_coop_settings_loaded
        )

    def _on_coop_settings_loaded(self, success: bool, message: str) -> bool:
        if success:
            # Open once the worker's result has been applied to the view
            QTimer.singleShot(0, self._show_coop_settings_dialog)
        return False

    def _show_coop_settings_dialog(self):
        dlg = CoopSettingsDialog(self.manager.loaded_settings, self)
        if dlg.exec() != QDialog.Accepted:
            return
        changed = dlg.changed_values()
        if not changed:
            return
        self._run_in_worker(self.manager.save_coop_settings, changed)

    def _open_url(self, url: str):
        QDesktopServices.openUrl(QUrl(url))

    # ── Self update ───────────────────────────────────────────────────

    def _start_update_check(self):
        self.update_worker = WorkerThread(_probe_self_update)
        self.update_worker.finished_signal.connect(self._on_update_checked)
        self.update_worker.start()

    def _on_update_checked(self, available: bool, tag: str):
        if not available:
            return
        self.update_label.setText(
            f"A new version of this manager is available: <b>{tag}</b> "
            f'(<a href="{MANAGER_RELEASES_PAGE}">download</a>)'
        )
        self.update_label.setVisible(True)

    # ── Worker Thread Management ──────────────────────────────────────

    def _run_in_worker(self, func, *args, on_finished=None, **kwargs):
        self._set_busy(True)

        # The previous worker has already emitted its result but may still be unwinding
        if self.worker is not None:
            self.worker.wait()

        self.worker = WorkerThread(func, *args, **kwargs)
        self.worker.finished_signal.connect(
            lambda success, message: self._on_worker_finished(success, message, on_finished)
        )
        self.worker.start()

    def _on_worker_finished(self, success: bool, message: str, on_finished=None):
        self._set_busy(False)

        handled = on_finished(success, message) if on_finished else False
        if success:
            self._append_log(f"✅ {message}")
        else:
            self._append_log(f"❌ {message}")
            if not handled:
                QMessageBox.warning(self, "Operation Failed", message)

        self._update_view()

    def _fatal_error(self, message: str):
        box = QMessageBox(self)
        box.setIcon(QMessageBox.Critical)
        box.setWindowTitle("Error")
        box.setText("I'm terribly sorry but an error occurred!")
        box.setInformativeText(message)
        box.setStandardButtons(QMessageBox.NoButton)
        box.addButton("Exit", QMessageBox.AcceptRole)
        box.setWindowFlag(Qt.WindowCloseButtonHint, False)
        box.exec()
        self._wait_for_workers()
        QApplication.exit(1)

    def _wait_for_workers(self):
        # A QThread destroyed while running aborts the process.
        # Both workers are bounded by the network timeouts.
        for worker in (self.worker, self.update_worker):
            if worker is not None and worker.isRunning():
                self._logger.info("Waiting for a background operation to finish...")
                worker.wait()

    def _set_busy(self, busy: bool):
        self.progress.setVisible(busy)
        self._update_buttons()

    # ── Close ─────────────────────────────────────────────────────────

    def closeEvent(self, event):
        if self.worker and self.worker.isRunning():
            reply = QMessageBox.question(
                self,
                "Operation in Progress",
                "An operation is still running. Quit once it has finished?",
                QMessageBox.Yes | QMessageBox.No,
            )
            if reply != QMessageBox.Yes:
                event.ignore()
                return
        self._wait_for_workers()
        event.accept()


# ── Entry Point ───────────────────────────────────────────────────────

def main(
    logger: logging.Logger | None = None,
    *,
    install_dir_override: str | None = None,
    cache_dir: str | None = None,
    settings_org: str = "ERSCoopManager",
    settings_app: str = "ERSCoopManager",
    persist_settings: bool = True,
    check_updates: bool = True,
):
    app = QApplication(sys.argv)
    app.setStyle("Fusion")

    window = MainWindow(
        logger=logger,
        install_dir_override=install_dir_override,
        cache_dir=cache_dir,
        settings_org=settings_org,
        settings_app=settings_app,
        persist_settings=persist_settings,
        check_updates=check_updates,
    )
    window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
