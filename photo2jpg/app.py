"""
Desktop front end for photo2jpg.

Collects image files by picker or drag and drop, runs them through the
conversion pipeline and saves the JPEG results on demand.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QLabel, QPushButton, QSlider, QProgressBar, QFileDialog, QMessageBox,
    QGroupBox, QListWidget, QListWidgetItem, QAbstractItemView
)
from PyQt6.QtCore import Qt, QSize
from PyQt6.QtGui import QIcon, QImage, QPixmap

from .config import AppConfig, create_decoder, create_encoder, load_config
from .decoder import HEIC_AVAILABLE
from .errors import InputRejected
from .exporter import DirectorySink, ResultExporter
from .intake import collect_inputs
from .metrics import describe_savings, format_bytes
from .models import BatchState, ConversionRequest, ConversionResult, InputImage
from .pipeline import ConversionPipeline

logger = logging.getLogger(__name__)


DARK_THEME_STYLESHEET = """
QWidget {
    color: #E0E0E0;
    background-color: #1E1E1E;
    font-family: "Segoe UI", sans-serif;
    font-size: 10pt;
}
QMainWindow {
    background-color: #121212;
}
QGroupBox {
    border: 1px solid #3A3A3A;
    border-radius: 8px;
    margin-top: 1.2em;
    font-weight: bold;
    background-color: #252526;
    padding: 20px 12px 12px 12px;
}
QGroupBox::title {
    subcontrol-origin: margin;
    left: 10px;
    padding: 0 5px;
    color: #64B5F6;
}
QPushButton {
    background-color: #3C3C3C;
    border: 1px solid #505050;
    border-radius: 6px;
    padding: 6px 12px;
    min-width: 80px;
}
QPushButton:hover {
    background-color: #4A4A4A;
}
QPushButton:disabled {
    background-color: #252525;
    color: #606060;
}
QPushButton[class="primary"] {
    background-color: #0D47A1;
    border: 1px solid #1565C0;
    color: #FFFFFF;
}
QLabel#dropArea {
    border: 2px dashed #505050;
    border-radius: 8px;
    padding: 24px;
    color: #9E9E9E;
}
QLabel#dropArea[dragOver="true"] {
    border-color: #64B5F6;
    color: #E0E0E0;
}
QListWidget {
    background-color: #2D2D2D;
    border: 1px solid #404040;
    border-radius: 4px;
}
QProgressBar {
    border: 1px solid #404040;
    border-radius: 6px;
    text-align: center;
    background-color: #202020;
}
QProgressBar::chunk {
    background-color: #1976D2;
    border-radius: 5px;
}
"""


THUMBNAIL_SIZE = 48
IMAGE_PATTERNS = ['*.png', '*.jpg', '*.jpeg', '*.gif', '*.bmp', '*.webp', '*.tif', '*.tiff']


def image_file_filter() -> str:
    """File dialog filter for the formats the decoders can read."""
    patterns = list(IMAGE_PATTERNS)
    if HEIC_AVAILABLE:
        patterns += ['*.heic', '*.heif']
    return f"Images ({' '.join(patterns)});;All files (*)"


def thumbnail_icon(data: bytes) -> QIcon:
    """Scaled preview of encoded image bytes; an empty icon when Qt cannot read them."""
    image = QImage.fromData(data)
    if image.isNull():
        return QIcon()
    scaled = image.scaled(
        THUMBNAIL_SIZE, THUMBNAIL_SIZE,
        Qt.AspectRatioMode.KeepAspectRatio,
        Qt.TransformationMode.SmoothTransformation
    )
    return QIcon(QPixmap.fromImage(scaled))


class MainWindow(QMainWindow):
    """Main application window."""

    def __init__(self, config: AppConfig):
        super().__init__()
        self.config = config
        self.selected_files: list[InputImage] = []
        self.save_dir: Optional[Path] = None
        self.converting = False

        self.pipeline = ConversionPipeline(create_decoder(config), create_encoder(config), parent=self)
        self.pipeline.on_progress(self.on_progress_updated)
        self.pipeline.on_complete(self.on_conversion_complete)
        self.pipeline.error_occurred.connect(self.on_error)

        self.exporter = ResultExporter(stagger_interval_ms=config.stagger_interval_ms, parent=self)
        self.exporter.export_failed.connect(self.on_export_failed)
        self.exporter.batch_exported.connect(self.on_batch_exported)

        self.setAcceptDrops(True)
        self.init_ui()

    def init_ui(self):
        """Initialize the user interface."""
        self.setWindowTitle("photo2jpg")
        self.resize(720, 760)
        central = QWidget()
        layout = QVBoxLayout(central)

        # Input
        input_group = QGroupBox("Images")
        input_layout = QVBoxLayout(input_group)
        self.drop_area = QLabel("Drop images here")
        self.drop_area.setObjectName("dropArea")
        self.drop_area.setAlignment(Qt.AlignmentFlag.AlignCenter)
        input_layout.addWidget(self.drop_area)
        self.select_btn = QPushButton("Select images...")
        self.select_btn.clicked.connect(self.browse_files)
        input_layout.addWidget(self.select_btn)
        self.preview_list = QListWidget()
        self.preview_list.setIconSize(QSize(THUMBNAIL_SIZE, THUMBNAIL_SIZE))
        input_layout.addWidget(self.preview_list)
        layout.addWidget(input_group)

        # Controls
        controls_group = QGroupBox("Conversion")
        controls_layout = QVBoxLayout(controls_group)
        quality_row = QHBoxLayout()
        quality_row.addWidget(QLabel("Quality"))
        self.quality_slider = QSlider(Qt.Orientation.Horizontal)
        self.quality_slider.setRange(1, 100)
        self.quality_slider.setValue(self.config.default_quality)
        self.quality_slider.valueChanged.connect(self.on_quality_value_changed)
        quality_row.addWidget(self.quality_slider)
        self.quality_label = QLabel(str(self.config.default_quality))
        quality_row.addWidget(self.quality_label)
        controls_layout.addLayout(quality_row)

        self.progress_bar = QProgressBar()
        self.progress_bar.setValue(0)
        controls_layout.addWidget(self.progress_bar)
        self.progress_label = QLabel("")
        controls_layout.addWidget(self.progress_label)

        button_row = QHBoxLayout()
        self.convert_btn = QPushButton("Convert to JPG")
        self.convert_btn.setProperty("class", "primary")
        self.convert_btn.clicked.connect(self.start_conversion)
        button_row.addWidget(self.convert_btn)
        self.clear_btn = QPushButton("Clear")
        self.clear_btn.clicked.connect(self.clear_all)
        button_row.addWidget(self.clear_btn)
        controls_layout.addLayout(button_row)
        layout.addWidget(controls_group)

        # Results
        results_group = QGroupBox("Results")
        results_layout = QVBoxLayout(results_group)
        self.results_list = QListWidget()
        self.results_list.setIconSize(QSize(THUMBNAIL_SIZE, THUMBNAIL_SIZE))
        self.results_list.setSelectionMode(QAbstractItemView.SelectionMode.ExtendedSelection)
        results_layout.addWidget(self.results_list)
        save_row = QHBoxLayout()
        self.save_selected_btn = QPushButton("Save selected...")
        self.save_selected_btn.clicked.connect(self.save_selected)
        save_row.addWidget(self.save_selected_btn)
        self.save_all_btn = QPushButton("Save all...")
        self.save_all_btn.clicked.connect(self.save_all)
        save_row.addWidget(self.save_all_btn)
        results_layout.addLayout(save_row)
        layout.addWidget(results_group)

        self.setCentralWidget(central)
        self.update_buttons()

    # Input

    def dragEnterEvent(self, event):
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
            self.set_drag_over(True)

    def dragLeaveEvent(self, event):
        self.set_drag_over(False)

    def dropEvent(self, event):
        self.set_drag_over(False)
        paths = [Path(url.toLocalFile()) for url in event.mimeData().urls() if url.isLocalFile()]
        event.acceptProposedAction()
        self.handle_files(paths)

    def set_drag_over(self, active: bool):
        self.drop_area.setProperty("dragOver", "true" if active else "false")
        self.drop_area.style().unpolish(self.drop_area)
        self.drop_area.style().polish(self.drop_area)

    def browse_files(self):
        files, _ = QFileDialog.getOpenFileNames(self, "Select images", "", image_file_filter())
        if files:
            self.handle_files([Path(f) for f in files])

    def handle_files(self, paths: list[Path]):
        """Keep the image files among ``paths`` as the next batch."""
        try:
            intake = collect_inputs(paths)
        except InputRejected:
            QMessageBox.warning(self, "No images", "Please select valid image files.")
            return
        except OSError as e:
            QMessageBox.warning(self, "Error", f"Cannot read the selected files: {e}")
            return

        if intake.rejected:
            QMessageBox.warning(
                self,
                "Some files skipped",
                "These files are not images and were skipped:\n" + "\n".join(intake.rejected)
            )

        logger.info(f"Selected {len(intake.images)} images")
        self.selected_files = intake.images
        self.preview_list.clear()
        for image in self.selected_files:
            item = QListWidgetItem(f"{image.name}  -  {format_bytes(image.byte_size)}  -  {image.mime_type}")
            item.setIcon(thumbnail_icon(image.raw_bytes))
            self.preview_list.addItem(item)
        self.update_buttons()

    def on_quality_value_changed(self, value: int):
        self.quality_label.setText(str(value))

    # Conversion

    def start_conversion(self):
        """Start converting the selected images."""
        if not self.selected_files:
            return
        self.exporter.cancel()
        self.results_list.clear()
        self.progress_bar.setValue(0)
        self.progress_label.setText(f"0 of {len(self.selected_files)} images converted")

        request = ConversionRequest.from_percent(self.quality_slider.value())
        self.converting = True
        self.pipeline.submit_batch(self.selected_files, request)
        self.update_buttons()

    def on_progress_updated(self, completed: int, total: int):
        """Handle progress updates from the worker thread."""
        self.progress_bar.setValue(int(completed / total * 100))
        self.progress_label.setText(f"{completed} of {total} images converted")

    def on_conversion_complete(self, state: BatchState):
        """Show results and report failures once the batch is done."""
        self.converting = False
        self.results_list.clear()
        for result in state.results:
            item = QListWidgetItem(self.describe_result(result))
            item.setIcon(thumbnail_icon(result.output_bytes))
            item.setData(Qt.ItemDataRole.UserRole, result)
            self.results_list.addItem(item)

        self.progress_label.setText(
            f"Converted {len(state.results)} of {state.total} images"
        )
        self.update_buttons()

        if state.failures:
            lines = [f"{f.source.name}: {f.error}" for f in state.failures]
            QMessageBox.warning(self, "Some images failed", "\n".join(lines))

    def describe_result(self, result: ConversionResult) -> str:
        return (
            f"{result.output_name}\n"
            f"Original: {format_bytes(result.source.byte_size)}   "
            f"Converted: {format_bytes(result.output_byte_size)}   "
            f"Savings: {describe_savings(result.savings)}"
        )

    def on_error(self, error_message: str):
        """Handle errors from the worker thread."""
        self.converting = False
        self.progress_label.setText("Error occurred")
        self.update_buttons()
        QMessageBox.critical(self, "Error", error_message)

    # Export

    def choose_save_dir(self) -> bool:
        folder = QFileDialog.getExistingDirectory(self, "Save converted images to", str(self.save_dir or ""))
        if not folder:
            return False
        self.save_dir = Path(folder)
        return True

    def save_selected(self):
        items = self.results_list.selectedItems()
        if not items or not self.choose_save_dir():
            return
        sink = DirectorySink(self.save_dir)
        for item in items:
            self.exporter.export_single(item.data(Qt.ItemDataRole.UserRole), sink)

    def save_all(self):
        results = self.pipeline.state.results
        if not results or not self.choose_save_dir():
            return
        self.exporter.export_batch(results, DirectorySink(self.save_dir))

    def on_export_failed(self, name: str, reason: str):
        QMessageBox.warning(self, "Save failed", f"Could not save {name}: {reason}")

    def on_batch_exported(self, count: int):
        self.statusBar().showMessage(f"Saved {count} images", 5000)

    # State

    def clear_all(self):
        """Discard the selection, the results and any pending saves."""
        self.pipeline.clear()
        self.exporter.cancel()
        self.selected_files = []
        self.converting = False
        self.preview_list.clear()
        self.results_list.clear()
        self.progress_bar.setValue(0)
        self.progress_label.setText("")
        self.update_buttons()

    def update_buttons(self):
        running = self.converting
        has_results = bool(self.pipeline.state.results)
        self.convert_btn.setEnabled(bool(self.selected_files) and not running)
        self.select_btn.setEnabled(not running)
        self.save_selected_btn.setEnabled(has_results)
        self.save_all_btn.setEnabled(has_results)

    def closeEvent(self, event):
        self.exporter.cancel()
        self.pipeline.shutdown()
        super().closeEvent(event)


def main():
    """Application entry point."""
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    app = QApplication(sys.argv)
    app.setStyle('Fusion')
    app.setStyleSheet(DARK_THEME_STYLESHEET)

    window = MainWindow(config)
    window.show()

    sys.exit(app.exec())


if __name__ == '__main__':
    main()
