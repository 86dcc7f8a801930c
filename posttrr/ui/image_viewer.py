"""Zoom, pan and paging state for the full-screen property image viewer."""

from dataclasses import dataclass, field

MIN_ZOOM = 1.0
MAX_ZOOM = 4.0
ZOOM_STEP = 0.25


@dataclass
class Point:
    x: float = 0.0
    y: float = 0.0


@dataclass
class ImageViewerState:
    """
    State of the image viewer for one gallery.

    Panning is only possible while zoomed in. Paging to another image
    resets zoom and pan.
    """

    images: list[str]
    current_index: int = 0
    zoom: float = MIN_ZOOM
    position: Point = field(default_factory=Point)
    dragging: bool = False
    _drag_start: Point = field(default_factory=Point, repr=False)

    def __post_init__(self) -> None:
        if self.images:
            self.current_index = min(max(self.current_index, 0), len(self.images) - 1)
        else:
            self.current_index = 0

    @property
    def current_image(self) -> str | None:
        return self.images[self.current_index] if self.images else None

    @property
    def counter(self) -> str:
        return f"Image {self.current_index + 1} of {len(self.images)}"

    @property
    def can_zoom_in(self) -> bool:
        return self.zoom < MAX_ZOOM

    @property
    def has_prev(self) -> bool:
        return self.current_index > 0

    @property
    def has_next(self) -> bool:
        return self.current_index < len(self.images) - 1

    # --- Zoom ---

    def zoom_in(self) -> None:
        self.zoom = min(self.zoom + ZOOM_STEP, MAX_ZOOM)

    def zoom_out(self) -> None:
        self.zoom = max(self.zoom - ZOOM_STEP, MIN_ZOOM)
        if self.zoom == MIN_ZOOM:
            self.position = Point()

    def reset_zoom(self) -> None:
        self.zoom = MIN_ZOOM
        self.position = Point()

    # --- Pan ---

    def mouse_down(self, x: float, y: float) -> None:
        if self.zoom > MIN_ZOOM:
            self.dragging = True
            self._drag_start = Point(x - self.position.x, y - self.position.y)

    def mouse_move(self, x: float, y: float) -> None:
        if self.dragging and self.zoom > MIN_ZOOM:
            self.position = Point(x - self._drag_start.x, y - self._drag_start.y)

    def mouse_up(self) -> None:
        # Also bound to mouse-leave
        self.dragging = False

    # --- Paging ---

    def next_image(self) -> None:
        if self.has_next:
            self.current_index += 1
            self.reset_zoom()

    def prev_image(self) -> None:
        if self.has_prev:
            self.current_index -= 1
            self.reset_zoom()

    def download_filename(self) -> str:
        return f"property-image-{self.current_index + 1}.jpg"
