import logging
import math
import os

import drawsvg as draw
from shapely import affinity
from shapely.geometry import LineString, Point, box
from shapely.ops import unary_union
from shapely.strtree import STRtree

from pipe_core import JointKind

logger = logging.getLogger(__name__)

PIPE_RADIUS = 0.2
BALL_JOINT_RADIUS = PIPE_RADIUS * 1.5
TEAPOT_SIZE = BALL_JOINT_RADIUS

DEFAULT_CAMERA_POSITION = (10.0, 10.0, 10.0)
CAMERA_TARGET = (0.0, 0.0, 0.0)
RANDOM_LOOK_DISTANCE = 14.0


# ============================================================================
# VECTOR HELPERS
# ============================================================================

def _sub(a, b):
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _dot(a, b):
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _cross(a, b):
    return (a[1] * b[2] - a[2] * b[1],
            a[2] * b[0] - a[0] * b[2],
            a[0] * b[1] - a[1] * b[0])


def _normalize(v):
    mag = math.sqrt(_dot(v, v))
    if mag < 1e-10:
        return (0.0, 0.0, 0.0)
    return (v[0] / mag, v[1] / mag, v[2] / mag)


def _rotate_about_axis(v, axis, angle_rad):
    """Rodrigues rotation of v about a unit axis."""
    cos_a, sin_a = math.cos(angle_rad), math.sin(angle_rad)
    cross = _cross(axis, v)
    along = _dot(axis, v) * (1 - cos_a)
    return tuple(v[i] * cos_a + cross[i] * sin_a + axis[i] * along for i in range(3))


# ============================================================================
# CAMERA
# ============================================================================

class Camera:
    def __init__(self, position=DEFAULT_CAMERA_POSITION, target=CAMERA_TARGET):
        self.position = tuple(float(c) for c in position)
        self.target = tuple(float(c) for c in target)

    def look(self):
        """Restore the default view."""
        self.position = DEFAULT_CAMERA_POSITION
        self.target = CAMERA_TARGET

    def random_look(self, rng):
        axis = _normalize((rng.uniform(-1, 1), rng.uniform(-1, 1), rng.uniform(-1, 1)))
        if axis == (0.0, 0.0, 0.0):
            axis = (0.0, 1.0, 0.0)
        self.position = _rotate_about_axis((RANDOM_LOOK_DISTANCE, 0.0, 0.0), axis,
                                           math.pi / 2)
        self.target = CAMERA_TARGET

    def view_basis(self):
        """(right, up, forward) unit vectors of the view."""
        forward = _normalize(_sub(self.target, self.position))
        world_up = (0.0, 1.0, 0.0)
        if abs(_dot(forward, world_up)) > 0.999:
            world_up = (0.0, 0.0, 1.0)
        right = _normalize(_cross(forward, world_up))
        up = _cross(right, forward)
        return right, up, forward

    def project(self, point, basis=None):
        """Map a 3D point to (x, y, depth); y grows downward, depth away from the camera."""
        right, up, forward = basis if basis is not None else self.view_basis()
        rel = _sub(point, self.target)
        return (_dot(rel, right), -_dot(rel, up), _dot(_sub(point, self.position), forward))


# ============================================================================
# SCENE
# ============================================================================

class PipeGroup:
    """Visual group of one pipe: the segments and joints it asked for."""

    def __init__(self, color, texture_path=None):
        self.color = color
        self.texture_path = texture_path
        self.segments = []
        self.joints = []

    def generate_pipe_line(self, from_point, to_point):
        self.segments.append((tuple(from_point), tuple(to_point)))

    def generate_pipe_joint(self, joint_kind, position):
        if joint_kind is JointKind.NONE:
            return
        self.joints.append((joint_kind, tuple(position)))


class TextureCache:
    """Resolves texture paths once; missing files resolve to None."""

    def __init__(self, base_dir=None):
        self.base_dir = base_dir
        self._textures = {}

    def resolve(self, texture_path):
        if not texture_path:
            return None
        if texture_path not in self._textures:
            full_path = texture_path
            if self.base_dir and not os.path.isabs(texture_path):
                full_path = os.path.join(self.base_dir, texture_path)
            if os.path.isfile(full_path):
                self._textures[texture_path] = full_path
            else:
                logger.warning("Texture %s not found, using plain colour", texture_path)
                self._textures[texture_path] = None
        return self._textures[texture_path]


class SvgPipeScene:
    def __init__(self, textures=None):
        self.groups = []
        self.textures = textures if textures is not None else TextureCache()

    def create_group(self, color, texture_path=None):
        return PipeGroup(color, texture_path)

    def attach(self, group):
        if group not in self.groups:
            self.groups.append(group)

    def detach(self, group):
        if group in self.groups:
            self.groups.remove(group)


# ============================================================================
# SHAPES
# ============================================================================

def _joint_shape(kind, x, y, scale):
    if kind is JointKind.TEAPOT:
        half = TEAPOT_SIZE * scale
        return box(x - half, y - half * 0.7, x + half, y + half * 0.7).buffer(half * 0.3)
    radius = BALL_JOINT_RADIUS if kind is JointKind.BALL else PIPE_RADIUS
    return Point(x, y).buffer(radius * scale)


def _segment_shape(x0, y0, x1, y1, scale):
    radius = PIPE_RADIUS * scale
    if math.hypot(x1 - x0, y1 - y0) < 1e-9:
        # seen end-on
        return Point(x0, y0).buffer(radius)
    return LineString([(x0, y0), (x1, y1)]).buffer(radius, cap_style=2)


def build_shapes(scene, camera, scale):
    """Projected shapes as (depth, polygon, group, kind) sorted far to near.

    kind is 'segment' or a JointKind.
    """
    basis = camera.view_basis()
    shapes = []
    for group in scene.groups:
        for start, end in group.segments:
            x0, y0, d0 = camera.project(start, basis)
            x1, y1, d1 = camera.project(end, basis)
            poly = _segment_shape(x0 * scale, y0 * scale, x1 * scale, y1 * scale, scale)
            shapes.append(((d0 + d1) / 2, poly, group, 'segment'))
        for kind, position in group.joints:
            x, y, depth = camera.project(position, basis)
            # joints sit slightly in front of the segments meeting there
            shapes.append((depth - 1e-3, _joint_shape(kind, x * scale, y * scale, scale),
                           group, kind))
    shapes.sort(key=lambda item: item[0], reverse=True)
    return shapes


def clip_line_outside_polygon(x1, y1, x2, y2, occlusion_poly):
    """Clip a line segment to stay OUTSIDE the occlusion polygon.

    Returns list of (x1, y1, x2, y2) tuples for visible line segments.
    """
    if occlusion_poly is None:
        return [(x1, y1, x2, y2)]

    clipped = LineString([(x1, y1), (x2, y2)]).difference(occlusion_poly)
    if clipped.is_empty:
        return []

    if clipped.geom_type == 'LineString':
        parts = [clipped]
    else:
        parts = [g for g in clipped.geoms if g.geom_type == 'LineString']

    result = []
    for part in parts:
        coords = list(part.coords)
        for i in range(len(coords) - 1):
            result.append((coords[i][0], coords[i][1], coords[i + 1][0], coords[i + 1][1]))
    return result


# ============================================================================
# SVG OUTPUT
# ============================================================================

def _ring_points(poly):
    flat = []
    for x, y in poly.exterior.coords:
        flat.extend((x, y))
    return flat


def _draw_filled(drawing, shapes, textures, stroke_width):
    for _, poly, group, kind in shapes:
        texture = textures.resolve(group.texture_path)
        fill = 'white' if texture else group.color
        drawing.append(draw.Lines(*_ring_points(poly), close=True, fill=fill,
                                  stroke='black', stroke_width=stroke_width))
        if texture and kind == 'segment':
            # dashed stand-in for the texture
            stripes = affinity.scale(poly, 0.8, 0.8)
            drawing.append(draw.Lines(*_ring_points(stripes), close=True,
                                      fill='none', stroke=group.color,
                                      stroke_width=stroke_width * 4,
                                      stroke_dasharray='4,4'))


def outline_segments(shapes):
    """Yield (group, x1, y1, x2, y2) for the visible outline edges of shapes.

    shapes are sorted far to near, so every shape is occluded by the ones
    after it. Only nearer shapes whose bounds overlap it are unioned.
    """
    if not shapes:
        return
    tree = STRtree([poly for _, poly, _, _ in shapes])
    for index, (_, poly, group, _kind) in enumerate(shapes):
        nearer = [shapes[i][1] for i in tree.query(poly) if i > index]
        occlusion = unary_union(nearer) if nearer else None
        coords = list(poly.exterior.coords)
        for (x1, y1), (x2, y2) in zip(coords, coords[1:]):
            for segment in clip_line_outside_polygon(x1, y1, x2, y2, occlusion):
                yield (group,) + segment


def _draw_outlines(drawing, shapes, stroke_width):
    for group, x1, y1, x2, y2 in outline_segments(shapes):
        drawing.append(draw.Line(x1, y1, x2, y2, stroke=group.color,
                                 stroke_width=stroke_width, fill='none'))


def render_svg(scene, camera, width=800, height=800, scale=None, style='filled',
               stroke_width=0.5, background=None):
    """Render every attached pipe group to an SVG string.

    Args:
        style: 'filled' (painter's order, solid fills) or 'outline'
               (strokes only, each clipped against nearer shapes)
        scale: pixels per grid unit; fits a 40-unit span by default
    """
    if style not in ('filled', 'outline'):
        raise ValueError("unknown render style: {!r}".format(style))
    if scale is None:
        scale = min(width, height) / 40.0

    d = draw.Drawing(width, height, origin='center', displayInline=False)
    if background:
        d.append(draw.Rectangle(-width / 2, -height / 2, width, height, fill=background))

    shapes = build_shapes(scene, camera, scale)
    if style == 'filled':
        _draw_filled(d, shapes, scene.textures, stroke_width)
    else:
        _draw_outlines(d, shapes, stroke_width)
    return d.as_svg()
