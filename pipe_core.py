import enum
import itertools
import logging
import random
from dataclasses import dataclass
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# RANDOM HELPERS
# ============================================================================

def chance(rng, probability):
    return rng.random() < probability


def choose_from(rng, items):
    """Pick one element of a non-empty sequence (or string) uniformly."""
    if len(items) == 0:
        raise ValueError("cannot choose from an empty sequence")
    return items[int(rng.random() * len(items))]


def random_color(rng):
    return '#{:06x}'.format(rng.randint(0, 0xffffff))


# ============================================================================
# GRID GEOMETRY
# ============================================================================

class Direction(enum.Enum):
    """One of the six axis-aligned unit steps."""
    POS_X = (1, 0, 0)
    NEG_X = (-1, 0, 0)
    POS_Y = (0, 1, 0)
    NEG_Y = (0, -1, 0)
    POS_Z = (0, 0, 1)
    NEG_Z = (0, 0, -1)

    @property
    def axis(self):
        return 'xyz'[[abs(c) for c in self.value].index(1)]

    @property
    def sign(self):
        return sum(self.value)

    @classmethod
    def from_axis(cls, axis, sign):
        if axis not in ('x', 'y', 'z') or sign not in (1, -1):
            raise ValueError("invalid axis/sign: {!r}, {!r}".format(axis, sign))
        delta = [0, 0, 0]
        delta['xyz'.index(axis)] = sign
        return cls(tuple(delta))

    @classmethod
    def between(cls, start, end):
        """Direction of the unit step from start to end."""
        delta = (end[0] - start[0], end[1] - start[1], end[2] - start[2])
        try:
            return cls(delta)
        except ValueError:
            raise ValueError("{} and {} are not adjacent grid cells".format(
                tuple(start), tuple(end))) from None


class GridCoordinate(NamedTuple):
    x: int
    y: int
    z: int

    def step(self, direction):
        dx, dy, dz = direction.value
        return GridCoordinate(self.x + dx, self.y + dy, self.z + dz)


@dataclass(frozen=True)
class Bounds:
    """Inclusive axis-aligned integer box."""
    min: GridCoordinate
    max: GridCoordinate

    def __post_init__(self):
        object.__setattr__(self, 'min', GridCoordinate(*self.min))
        object.__setattr__(self, 'max', GridCoordinate(*self.max))
        if any(lo > hi for lo, hi in zip(self.min, self.max)):
            raise ValueError("bounds min {} exceeds max {}".format(
                tuple(self.min), tuple(self.max)))

    def contains(self, coord):
        return all(lo <= c <= hi for c, lo, hi in zip(coord, self.min, self.max))

    def cell_count(self):
        count = 1
        for lo, hi in zip(self.min, self.max):
            count *= hi - lo + 1
        return count

    def random_coordinate(self, rng):
        return GridCoordinate(*(rng.randint(lo, hi)
                                for lo, hi in zip(self.min, self.max)))

    def coordinates(self):
        ranges = [range(lo, hi + 1) for lo, hi in zip(self.min, self.max)]
        return (GridCoordinate(*c) for c in itertools.product(*ranges))


DEFAULT_BOUNDS = Bounds(GridCoordinate(-10, -10, -10), GridCoordinate(10, 10, 10))


class OccupancyGrid:
    """Sparse map of claimed grid cells to the pipe that owns them.

    No bounds checking happens here; callers check Bounds before set().
    """

    def __init__(self):
        self._nodes = {}

    def set(self, coord, pipe):
        self._nodes[coord] = pipe

    def get(self, coord):
        return self._nodes.get(coord)

    def clear(self):
        self._nodes = {}

    def __len__(self):
        return len(self._nodes)

    def __contains__(self, coord):
        return coord in self._nodes

    def cells(self):
        return list(self._nodes)


# ============================================================================
# JOINTS
# ============================================================================

class JointKind(enum.Enum):
    NONE = 'none'
    ELBOW = 'elbow'
    BALL = 'ball'
    TEAPOT = 'teapot'


class JointMode(enum.Enum):
    ELBOW = 'elbow'
    BALL = 'ball'
    MIXED = 'mixed'
    CYCLE = 'cycle'


JOINT_CYCLE = (JointMode.ELBOW, JointMode.BALL, JointMode.MIXED)

# Probability of a ball joint (vs. elbow) at a turn, per concrete mode
BALL_JOINT_CHANCE = {
    JointMode.ELBOW: 0.0,
    JointMode.BALL: 1.0,
    JointMode.MIXED: 1 / 3,
}

DEFAULT_TEAPOT_CHANCE = 1 / 200


def check_probability(name, value):
    if not 0.0 <= value <= 1.0:
        raise ValueError("{} must be within [0, 1], got {!r}".format(name, value))


@dataclass(frozen=True)
class JointConfig:
    """Joint settings shared by every pipe of one spawned batch."""
    joint_mode: JointMode = JointMode.ELBOW
    ball_joint_chance: float = 0.0
    teapot_chance: float = DEFAULT_TEAPOT_CHANCE
    texture_path: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'joint_mode', JointMode(self.joint_mode))
        if self.joint_mode is JointMode.CYCLE:
            raise ValueError("a batch needs a concrete joint mode, not 'cycle'")
        check_probability('ball_joint_chance', self.ball_joint_chance)
        check_probability('teapot_chance', self.teapot_chance)

    @classmethod
    def for_mode(cls, joint_mode, teapot_chance=DEFAULT_TEAPOT_CHANCE,
                 texture_path=None):
        joint_mode = JointMode(joint_mode)
        if joint_mode is JointMode.CYCLE:
            raise ValueError("a batch needs a concrete joint mode, not 'cycle'")
        return cls(joint_mode=joint_mode,
                   ball_joint_chance=BALL_JOINT_CHANCE[joint_mode],
                   teapot_chance=teapot_chance,
                   texture_path=texture_path)


# ============================================================================
# GROWTH POLICY
# ============================================================================

def choose_direction(rng, last_direction=None):
    """Keep going straight half the time, otherwise pick axis then sign."""
    if chance(rng, 1 / 2) and last_direction is not None:
        return last_direction
    axis = choose_from(rng, 'xyz')
    sign = choose_from(rng, (1, -1))
    return Direction.from_axis(axis, sign)


def choose_joint(rng, joint_config, is_direction_change=True):
    # teapot is checked first and excludes the others
    if not is_direction_change:
        return JointKind.NONE
    if chance(rng, joint_config.teapot_chance):
        return JointKind.TEAPOT
    if chance(rng, joint_config.ball_joint_chance):
        return JointKind.BALL
    return JointKind.ELBOW


# ============================================================================
# PIPE
# ============================================================================

SEED_ATTEMPTS = 32


def check_path(key_points, grid, bounds=DEFAULT_BOUNDS):
    """Validate a stored path and return it as GridCoordinates.

    Raises ValueError for an empty path, points outside bounds or already
    claimed in grid, revisited cells and non-adjacent neighbours.
    """
    points = [GridCoordinate(*p) for p in key_points]
    if not points:
        raise ValueError("a pipe path needs at least one point")
    for point in points:
        if not bounds.contains(point):
            raise ValueError("path point {} lies outside {}".format(
                tuple(point), bounds))
        if grid.get(point) is not None:
            raise ValueError("path point {} is already occupied".format(
                tuple(point)))
    if len(set(points)) != len(points):
        raise ValueError("a pipe path may not revisit a cell")
    for a, b in zip(points, points[1:]):
        Direction.between(a, b)
    return points


class Pipe:
    """A single growing pipe.

    The pipe owns one visual group obtained from the scene; every segment
    and joint it decides on is requested from that group:

        group.generate_pipe_line(from_point, to_point)
        group.generate_pipe_joint(joint_kind, position)

    and the scene provides create_group(color, texture_path), attach(group)
    and detach(group).
    """

    def __init__(self, scene, grid, joint_config, bounds=DEFAULT_BOUNDS,
                 rng=None, start=None):
        self.grid = grid
        self.bounds = bounds
        self.joint_config = joint_config
        self.rng = rng if rng is not None else random.Random()

        if start is None:
            start = self._free_seed_coordinate()
        start = GridCoordinate(*start)
        if not bounds.contains(start):
            raise ValueError("start {} lies outside {}".format(tuple(start), bounds))
        if grid.get(start) is not None:
            raise ValueError("start {} is already occupied".format(tuple(start)))

        self.color = random_color(self.rng)
        self.group = scene.create_group(self.color, joint_config.texture_path)
        scene.attach(self.group)

        self.current_position = start
        self._key_points = [start]
        self.grid.set(start, self)
        # seed joint
        self.group.generate_pipe_joint(JointKind.BALL, start)

    @classmethod
    def from_key_points(cls, scene, grid, joint_config, key_points,
                        bounds=DEFAULT_BOUNDS, rng=None):
        """Rebuild a pipe along a stored path of adjacent grid cells."""
        points = check_path(key_points, grid, bounds)
        directions = [Direction.between(a, b) for a, b in zip(points, points[1:])]

        pipe = cls(scene, grid, joint_config, bounds=bounds, rng=rng,
                   start=points[0])
        last_direction = None
        for point, direction in zip(points[1:], directions):
            pipe._advance(point, direction, last_direction)
            last_direction = direction
        return pipe

    @property
    def key_points(self):
        return tuple(self._key_points)

    def last_direction(self):
        if len(self._key_points) < 2:
            return None
        return Direction.between(self._key_points[-2], self._key_points[-1])

    def step(self):
        """Try one growth step. Returns False when the chosen cell is blocked."""
        last_direction = self.last_direction()
        direction = choose_direction(self.rng, last_direction)
        candidate = self.current_position.step(direction)

        # TODO: try the remaining directions in random order before giving up
        if not self.bounds.contains(candidate) or self.grid.get(candidate) is not None:
            logger.debug("Pipe at %s blocked towards %s",
                         tuple(self.current_position), direction.name)
            return False

        self._advance(candidate, direction, last_direction)
        return True

    def _advance(self, candidate, direction, last_direction):
        self.grid.set(candidate, self)
        if last_direction is not None and last_direction is not direction:
            joint = choose_joint(self.rng, self.joint_config, True)
            self.group.generate_pipe_joint(joint, self.current_position)
        self.group.generate_pipe_line(self.current_position, candidate)
        self.current_position = candidate
        self._key_points.append(candidate)

    def _free_seed_coordinate(self):
        for _ in range(SEED_ATTEMPTS):
            coord = self.bounds.random_coordinate(self.rng)
            if self.grid.get(coord) is None:
                return coord
        # crowded field: pick among the cells that are still free
        free = [c for c in self.bounds.coordinates() if self.grid.get(c) is None]
        if not free:
            raise ValueError("no free cell left in {}".format(self.bounds))
        return choose_from(self.rng, free)
