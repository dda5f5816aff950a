import logging
import math
import random

import drawsvg as draw
from shapely.geometry import box
from shapely.ops import unary_union

logger = logging.getLogger(__name__)

TILE_SIZE = 20          # device pixels per tile edge
ASSUMED_FRAME_RATE = 60
COVER_COLOR = 'black'


# ============================================================================
# OVERLAY SURFACE
# ============================================================================

class SvgOverlay:
    """Viewport-sized 2D surface the dissolve paints on."""

    def __init__(self, width, height):
        self.width = width
        self.height = height
        self.clear()

    def clear(self):
        self.rects = []
        self.drawing = draw.Drawing(self.width, self.height, displayInline=False)

    def resize(self, width, height):
        # Resizing wipes the surface, like a canvas does
        self.width = width
        self.height = height
        self.clear()

    def fill_rect(self, x, y, w, h, fill=COVER_COLOR):
        self.rects.append((x, y, w, h))
        self.drawing.append(draw.Rectangle(x, y, w, h, fill=fill, stroke='none'))

    def coverage(self):
        """Fraction of the viewport covered by painted rectangles."""
        if not self.rects or self.width <= 0 or self.height <= 0:
            return 0.0
        viewport = box(0, 0, self.width, self.height)
        painted = unary_union([box(x, y, x + w, y + h) for x, y, w, h in self.rects])
        return painted.intersection(viewport).area / viewport.area

    def as_svg(self):
        return self.drawing.as_svg()


# ============================================================================
# DISSOLVE TRANSITION
# ============================================================================

class DissolveTransition:
    """Tile-by-tile noise wipe that covers the viewport, then runs a callback.

    Tiles are painted in shuffled order over roughly `seconds * 60` calls to
    advance(). When every tile is painted the surface is cleared and the
    completion callback runs once.
    """

    def __init__(self, surface, width, height, rng=None, tile_size=TILE_SIZE,
                 frame_rate=ASSUMED_FRAME_RATE):
        self.surface = surface
        self.rng = rng if rng is not None else random.Random()
        self.tile_size = tile_size
        self.frame_rate = frame_rate
        self.width = width
        self.height = height
        self.columns, self.rows = self._grid_dimensions(width, height)

        self.tiles = []
        self.revealed_count = 0
        self.total_frames = 0
        self.on_complete = None
        self._tile_columns = self.columns
        self._tile_rows = self.rows
        self._frame = 0
        self._active = False

    def _grid_dimensions(self, width, height):
        return (math.ceil(width / self.tile_size), math.ceil(height / self.tile_size))

    @property
    def active(self):
        return self._active

    @property
    def tile_count(self):
        return len(self.tiles)

    def tiles_per_frame(self):
        if self.total_frames <= 0:
            return self.tile_count
        return self.tile_count // self.total_frames

    def start(self, duration_seconds, on_complete):
        self._tile_columns, self._tile_rows = self.columns, self.rows
        self.tiles = [(index % self.columns, index // self.columns)
                      for index in range(self.columns * self.rows)]
        self.rng.shuffle(self.tiles)
        self.revealed_count = 0
        self.total_frames = int(round(duration_seconds * self.frame_rate))
        self.on_complete = on_complete
        self._frame = 0
        self._active = True
        logger.debug("Dissolve started: %d tiles over %d frames",
                     self.tile_count, self.total_frames)

    def advance(self):
        if not self._active:
            return
        self._frame += 1

        count = self.tiles_per_frame()
        if count == 0 and self.tile_count:
            # more frames than tiles: one tile every few frames
            cadence = math.ceil(self.total_frames / self.tile_count)
            count = 1 if self._frame % cadence == 0 else 0

        while count > 0 and self.revealed_count < self.tile_count:
            self._paint(self.tiles[self.revealed_count])
            self.revealed_count += 1
            count -= 1

        if self.revealed_count >= self.tile_count:
            self._finish()

    def resize(self, width, height):
        self.width = width
        self.height = height
        self.columns, self.rows = self._grid_dimensions(width, height)
        self.surface.resize(width, height)
        if self._active:
            for tile in self.tiles[:self.revealed_count]:
                self._paint(tile)

    def _paint(self, tile):
        column, row = tile
        tile_width = self.width / self._tile_columns
        tile_height = self.height / self._tile_rows
        self.surface.fill_rect(math.floor(column * tile_width),
                               math.floor(row * tile_height),
                               math.ceil(tile_width),
                               math.ceil(tile_height))

    def _finish(self):
        callback = self.on_complete
        self._active = False
        self.on_complete = None
        self.surface.clear()
        logger.debug("Dissolve finished")
        if callback is not None:
            callback()
