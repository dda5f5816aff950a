"""Spawn, growth, reset and timer lifecycle of a pipe field."""
import json
import random

import pytest

from dissolve import DissolveTransition, SvgOverlay
from pipe_core import Bounds, JointKind, JointMode
from pipe_field import (
    CANDY_CANE_TEXTURE, FieldConfig, PipeField, ResetTimer, load_paths,
)
from pipe_render import DEFAULT_CAMERA_POSITION, Camera, SvgPipeScene


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_field(config=None, seed=3, width=800, height=600):
    rng = random.Random(seed)
    overlay = SvgOverlay(width, height)
    field = PipeField(
        SvgPipeScene(),
        DissolveTransition(overlay, width, height, rng=rng),
        camera=Camera(),
        config=config if config is not None else FieldConfig(candy_cane_chance=0.0),
        rng=rng,
        clock=FakeClock(),
    )
    return field


def test_first_tick_spawns_single_pipe():
    field = make_field(FieldConfig(multiple=False, candy_cane_chance=0.0))
    field.tick()
    assert len(field.pipes) == 1
    assert field.batches_spawned == 1
    pipe = field.pipes[0]
    assert pipe.group.joints == [(JointKind.BALL, tuple(pipe.current_position))]
    assert field.grid.get(pipe.current_position) is pipe


def test_multiple_batches_hold_two_or_three_pipes():
    field = make_field(FieldConfig(multiple=True, candy_cane_chance=0.0))
    sizes = set()
    for _ in range(200):
        sizes.add(field.batch_size())
    assert sizes == {2, 3}


def test_ticks_grow_existing_pipes_without_respawning():
    field = make_field()
    field.tick()
    spawned = len(field.pipes)
    for _ in range(50):
        field.tick()
    assert field.batches_spawned == 1
    assert len(field.pipes) == spawned
    assert sum(len(p.key_points) for p in field.pipes) == len(field.grid)
    assert len(field.grid) > spawned


def test_reset_round_trip():
    field = make_field()
    for _ in range(30):
        field.tick()
    field.camera.random_look(field.rng)
    field.reset()

    assert field.pipes == ()
    assert len(field.grid) == 0
    assert field.scene.groups == []
    assert field.camera.position == DEFAULT_CAMERA_POSITION
    assert not field.clearing

    field.tick()
    assert field.batches_spawned == 2
    assert len(field.pipes) >= 1


def test_request_reset_dissolves_then_clears():
    field = make_field()
    field.tick()
    assert field.request_reset(fast=True)
    assert field.clearing
    assert not field.should_render
    assert field.dissolve.active
    # a second request while dissolving collapses into the first
    assert not field.request_reset(fast=False)

    # 0.2s at 60fps = 12 frames; 40x30 tiles = 100 tiles per frame
    for _ in range(11):
        field.tick()
    assert field.clearing
    field.tick()
    assert not field.clearing
    assert field.should_render
    assert field.pipes == ()
    assert len(field.grid) == 0


def test_slow_reset_takes_two_seconds():
    field = make_field()
    field.request_reset(fast=False)
    assert field.dissolve.total_frames == 120


def test_timer_triggers_reset_and_rearms():
    field = make_field(FieldConfig(reset_interval=(16, 24), candy_cane_chance=0.0))
    delay = field.schedule_reset()
    assert 16 <= delay <= 24
    assert field.timer.armed

    field.clock.now = 15.9
    field.tick()
    assert not field.clearing

    field.clock.now = 24.0
    field.tick()
    assert field.clearing
    assert field.timer.armed
    assert 40.0 <= field.timer.deadline <= 48.0


def test_reset_timer_fires_once():
    timer = ResetTimer()
    assert not timer.poll(100.0)
    timer.arm(5.0, now=10.0)
    assert not timer.poll(14.9)
    assert timer.poll(15.0)
    assert not timer.poll(16.0)
    timer.arm(1.0, now=0.0)
    timer.cancel()
    assert not timer.poll(10.0)


def test_joint_cycle_advances_once_per_batch():
    field = make_field(FieldConfig(joint_mode='cycle', candy_cane_chance=0.0))
    modes = []
    for _ in range(4):
        batch = field.spawn_batch()
        modes.append(batch[0].joint_config.joint_mode)
    assert modes == [JointMode.ELBOW, JointMode.BALL, JointMode.MIXED, JointMode.ELBOW]


def test_batch_shares_one_joint_config():
    field = make_field(FieldConfig(multiple=True, candy_cane_chance=0.0))
    batch = field.spawn_batch()
    assert len({id(p.joint_config) for p in batch}) == 1


def test_candy_cane_batch():
    field = make_field(FieldConfig(candy_cane_chance=1.0, texture_path='plain.png'))
    config = field.next_joint_config()
    assert config.texture_path == CANDY_CANE_TEXTURE
    assert config.teapot_chance == pytest.approx(1 / 20)


def test_config_is_read_lazily():
    field = make_field(FieldConfig(multiple=False, candy_cane_chance=0.0))
    field.tick()
    assert len(field.pipes) == 1
    field.config = {'multiple': True, 'joints': 'ball', 'candy_cane_chance': 0.0}
    assert len(field.pipes) == 1
    field.reset()
    field.tick()
    assert len(field.pipes) in (2, 3)
    assert field.pipes[0].joint_config.ball_joint_chance == 1.0


@pytest.mark.parametrize('options', [
    {'joints': 'spiral'},
    {'interval': (24, 16)},
    {'interval': (0, 5)},
    {'teapot_chance': 2.0},
    {'colour': 'red'},
    {'multiple': 'no'},
    {'multiple': 1},
    {'texture_path': 42},
])
def test_config_rejects_bad_options(options):
    with pytest.raises(ValueError):
        FieldConfig.from_mapping(options)


def test_resize_reaches_dissolve():
    field = make_field()
    field.on_resize(400, 200)
    assert (field.dissolve.columns, field.dissolve.rows) == (20, 10)


def test_seed_from_paths_and_load_paths(tmp_path):
    payload = [
        [[0, 0, 0], [1, 0, 0], [1, 1, 0]],
        {'points': [{'x': 5, 'y': 5, 'z': 5}, {'x': 5, 'y': 5, 'z': 6}]},
    ]
    path_file = tmp_path / 'paths.json'
    path_file.write_text(json.dumps(payload), encoding='utf-8')

    paths = load_paths(str(path_file))
    assert paths == [[(0, 0, 0), (1, 0, 0), (1, 1, 0)], [(5, 5, 5), (5, 5, 6)]]

    field = make_field()
    added = field.seed_from_paths(paths)
    assert len(added) == 2
    assert len(field.grid) == 5
    # seeded pipes keep growing; no fresh batch is spawned
    field.tick()
    assert field.batches_spawned == 0


def test_load_paths_rejects_non_list(tmp_path):
    path_file = tmp_path / 'paths.json'
    path_file.write_text('{"points": []}', encoding='utf-8')
    with pytest.raises(ValueError):
        load_paths(str(path_file))


def test_field_respects_custom_bounds():
    rng = random.Random(11)
    bounds = Bounds((0, 0, 0), (2, 2, 2))
    field = PipeField(SvgPipeScene(), DissolveTransition(SvgOverlay(40, 40), 40, 40, rng=rng),
                      config=FieldConfig(candy_cane_chance=0.0), bounds=bounds, rng=rng,
                      clock=FakeClock())
    for _ in range(100):
        field.tick()
    assert all(bounds.contains(cell) for cell in field.grid.cells())
    assert len(field.grid) <= bounds.cell_count()


def test_overlapping_seed_paths_leave_the_field_untouched():
    field = make_field(FieldConfig(joint_mode='cycle', candy_cane_chance=0.0))
    with pytest.raises(ValueError):
        field.seed_from_paths([[(0, 0, 0), (1, 0, 0)], [(1, 0, 0), (2, 0, 0)]])
    assert field.pipes == ()
    assert len(field.grid) == 0
    assert field.scene.groups == []
    # the joint cycle did not advance
    assert field.spawn_batch()[0].joint_config.joint_mode is JointMode.ELBOW


def test_bad_seed_path_after_a_good_one_is_rejected_up_front():
    field = make_field()
    with pytest.raises(ValueError):
        field.seed_from_paths([[(0, 0, 0), (1, 0, 0)], [(5, 5, 5), (7, 5, 5)]])
    assert field.pipes == ()
    assert len(field.grid) == 0


@pytest.mark.parametrize('payload', [
    [[[0.7, 0, 0], [1.9, 0, 0]]],
    [[[0, 0], [1, 0]]],
    [[[0, 0, 0, 0]]],
    [[[True, 0, 0]]],
    [[{'x': 1, 'y': 2}]],
    [7],
    [{'points': 'abc'}],
])
def test_load_paths_rejects_malformed_points(tmp_path, payload):
    path_file = tmp_path / 'paths.json'
    path_file.write_text(json.dumps(payload), encoding='utf-8')
    with pytest.raises(ValueError, match='paths.json'):
        load_paths(str(path_file))


def test_batch_is_capped_at_free_cells():
    rng = random.Random(4)
    bounds = Bounds((0, 0, 0), (0, 0, 0))
    field = PipeField(SvgPipeScene(), DissolveTransition(SvgOverlay(40, 40), 40, 40, rng=rng),
                      config=FieldConfig(multiple=True, candy_cane_chance=0.0),
                      bounds=bounds, rng=rng, clock=FakeClock())
    batch = field.spawn_batch()
    assert len(batch) == 1
    assert field.grid.get(batch[0].current_position) is batch[0]
    # nothing left to claim
    assert field.spawn_batch() == ()
    assert len(field.pipes) == 1
    assert field.batches_spawned == 1
