import json
import logging
import random
import time
from dataclasses import dataclass, fields
from typing import Optional, Tuple

from pipe_core import (
    DEFAULT_BOUNDS, DEFAULT_TEAPOT_CHANCE, JOINT_CYCLE, JointConfig, JointMode,
    OccupancyGrid, Pipe, check_path, check_probability, chance,
)

logger = logging.getLogger(__name__)

CANDY_CANE_TEXTURE = 'images/textures/candycane.png'
CANDY_CANE_TEAPOT_CHANCE = 1 / 20

FAST_DISSOLVE_SECONDS = 0.2
SLOW_DISSOLVE_SECONDS = 2.0


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class FieldConfig:
    """Options read lazily by the next spawn or reset."""
    multiple: bool = True
    joint_mode: JointMode = JointMode.ELBOW
    texture_path: Optional[str] = None
    reset_interval: Tuple[float, float] = (16.0, 24.0)
    teapot_chance: float = DEFAULT_TEAPOT_CHANCE
    candy_cane_chance: float = 1 / 20

    def __post_init__(self):
        if not isinstance(self.multiple, bool):
            raise ValueError("multiple must be a bool, got {!r}".format(self.multiple))
        if self.texture_path is not None and not isinstance(self.texture_path, str):
            raise ValueError("texture_path must be a string or None, got {!r}".format(
                self.texture_path))
        object.__setattr__(self, 'joint_mode', JointMode(self.joint_mode))
        interval = tuple(float(v) for v in self.reset_interval)
        if len(interval) != 2 or interval[0] <= 0 or interval[0] > interval[1]:
            raise ValueError("reset_interval must be (min, max) with 0 < min <= max, "
                             "got {!r}".format(self.reset_interval))
        object.__setattr__(self, 'reset_interval', interval)
        check_probability('teapot_chance', self.teapot_chance)
        check_probability('candy_cane_chance', self.candy_cane_chance)

    @classmethod
    def from_mapping(cls, options):
        """Build a config from a host option bag ('joints' and 'interval' are aliases)."""
        aliases = {'joints': 'joint_mode', 'interval': 'reset_interval'}
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in options.items():
            name = aliases.get(key, key)
            if name not in known:
                raise ValueError("unknown field option: {!r}".format(key))
            kwargs[name] = value
        return cls(**kwargs)


# ============================================================================
# RESET TIMER
# ============================================================================

class ResetTimer:
    """Fire-once deadline, polled from the frame loop and re-armed by its owner."""

    def __init__(self):
        self.deadline = None

    @property
    def armed(self):
        return self.deadline is not None

    def arm(self, delay_seconds, now):
        self.deadline = now + delay_seconds

    def cancel(self):
        self.deadline = None

    def poll(self, now):
        """Return True (and disarm) once the deadline has passed."""
        if self.deadline is None or now < self.deadline:
            return False
        self.deadline = None
        return True


# ============================================================================
# FIELD
# ============================================================================

class PipeField:
    """Owns the live pipes, their occupancy grid and the periodic reset.

    Lifecycle: EMPTY -> GROWING -> (timer) -> DISSOLVING -> EMPTY -> ...

    Args:
        scene: scene collaborator (create_group / attach / detach)
        dissolve: transition with start(seconds, callback), advance(), resize(w, h)
        camera: optional object with look(); restored on every reset
        config: FieldConfig, replaceable at any time through the property
        clock: callable returning seconds; used for the reset timer
    """

    def __init__(self, scene, dissolve, camera=None, config=None,
                 bounds=DEFAULT_BOUNDS, rng=None, clock=time.monotonic):
        self.scene = scene
        self.dissolve = dissolve
        self.camera = camera
        self.config = config if config is not None else FieldConfig()
        self.bounds = bounds
        self.rng = rng if rng is not None else random.Random()
        self.clock = clock

        self.grid = OccupancyGrid()
        self.timer = ResetTimer()
        self.clearing = False
        self.batches_spawned = 0
        self._pipes = []
        self._joint_cycle_index = 0

    @property
    def config(self):
        return self._config

    @config.setter
    def config(self, config):
        if not isinstance(config, FieldConfig):
            config = FieldConfig.from_mapping(config)
        self._config = config

    @property
    def pipes(self):
        return tuple(self._pipes)

    @property
    def should_render(self):
        return not self.clearing

    # -- spawning ------------------------------------------------------------

    def batch_size(self):
        if not self.config.multiple:
            return 1
        return 2 + int(chance(self.rng, 1 / 10))

    def next_joint_config(self):
        """Joint settings for the next batch; advances the cycle once per call."""
        config = self.config
        joint_mode = config.joint_mode
        if joint_mode is JointMode.CYCLE:
            joint_mode = JOINT_CYCLE[self._joint_cycle_index % len(JOINT_CYCLE)]
            self._joint_cycle_index += 1

        teapot_chance = config.teapot_chance
        texture_path = config.texture_path
        if chance(self.rng, config.candy_cane_chance):
            teapot_chance = CANDY_CANE_TEAPOT_CHANCE
            texture_path = CANDY_CANE_TEXTURE
        return JointConfig.for_mode(joint_mode, teapot_chance=teapot_chance,
                                    texture_path=texture_path)

    def spawn_batch(self):
        free_cells = self.bounds.cell_count() - len(self.grid)
        if free_cells <= 0:
            logger.warning("No free cell left, skipping spawn")
            return ()
        joint_config = self.next_joint_config()
        count = min(self.batch_size(), free_cells)
        for _ in range(count):
            self._pipes.append(Pipe(self.scene, self.grid, joint_config,
                                    bounds=self.bounds, rng=self.rng))
        self.batches_spawned += 1
        logger.info("Spawned %d pipe(s) with %s joints", count,
                    joint_config.joint_mode.value)
        return self.pipes[-count:]

    def seed_from_paths(self, paths):
        """Add pipes rebuilt from stored key-point paths, sharing one joint config.

        Every path is checked before any pipe is built, so a ValueError
        leaves the field untouched.
        """
        checked = []
        claimed = set()
        for path in paths:
            points = check_path(path, self.grid, self.bounds)
            overlap = claimed.intersection(points)
            if overlap:
                raise ValueError("path point {} is already occupied".format(
                    tuple(min(overlap))))
            claimed.update(points)
            checked.append(points)

        joint_config = self.next_joint_config()
        added = []
        for points in checked:
            pipe = Pipe.from_key_points(self.scene, self.grid, joint_config, points,
                                        bounds=self.bounds, rng=self.rng)
            self._pipes.append(pipe)
            added.append(pipe)
        logger.info("Seeded %d pipe(s) from stored paths", len(added))
        return tuple(added)

    # -- frame loop ----------------------------------------------------------

    def tick(self):
        """Advance one animation frame."""
        if self.timer.poll(self.clock()):
            self.request_reset(fast=True)

        if not self._pipes:
            self.spawn_batch()
        else:
            for pipe in self._pipes:
                pipe.step()

        self.dissolve.advance()

    def on_resize(self, width, height):
        self.dissolve.resize(width, height)

    # -- resetting -----------------------------------------------------------

    def schedule_reset(self, interval_range=None):
        """(Re)arm the reset timer with a delay jittered within the range."""
        low, high = interval_range if interval_range is not None else self.config.reset_interval
        delay = self.rng.uniform(low, high)
        self.timer.cancel()
        self.timer.arm(delay, self.clock())
        logger.debug("Next reset in %.1fs", delay)
        return delay

    def request_reset(self, fast=True):
        """Re-arm the timer and start a dissolve unless one is already running."""
        self.schedule_reset()
        if self.clearing:
            return False
        self.clearing = True
        seconds = FAST_DISSOLVE_SECONDS if fast else SLOW_DISSOLVE_SECONDS
        logger.info("Reset requested (%s dissolve)", 'fast' if fast else 'slow')
        self.dissolve.start(seconds, self.reset)
        return True

    def reset(self):
        for pipe in self._pipes:
            self.scene.detach(pipe.group)
        removed = len(self._pipes)
        self._pipes = []
        self.grid.clear()
        if self.camera is not None:
            self.camera.look()
        self.clearing = False
        logger.info("Field reset, removed %d pipe(s)", removed)


def _parse_point(point, source):
    if isinstance(point, dict):
        try:
            point = (point['x'], point['y'], point['z'])
        except KeyError as exc:
            raise ValueError("{}: point {!r} is missing {}".format(
                source, point, exc)) from None
    if not isinstance(point, (list, tuple)) or len(point) != 3:
        raise ValueError("{}: expected an [x, y, z] point, got {!r}".format(source, point))
    for c in point:
        # bool is an int subclass
        if isinstance(c, bool) or not isinstance(c, int):
            raise ValueError("{}: point {!r} has a non-integer coordinate".format(
                source, point))
    return tuple(point)


def load_paths(path):
    """Read a JSON file holding a list of pipe paths ([[x, y, z], ...] each)."""
    with open(path, 'r', encoding='utf-8') as handle:
        payload = json.load(handle)
    if not isinstance(payload, list):
        raise ValueError("{}: expected a list of paths".format(path))
    paths = []
    for entry in payload:
        if isinstance(entry, dict):
            entry = entry.get('points', [])
        if not isinstance(entry, list):
            raise ValueError("{}: expected a list of points, got {!r}".format(path, entry))
        paths.append([_parse_point(point, path) for point in entry])
    return paths
