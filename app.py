import random

import streamlit as st
import streamlit.components.v1 as components

import dissolve
import logging_config
import pipe_field
import pipe_render

FRAME_RATE = 60
VIEW_WIDTH = 800
VIEW_HEIGHT = 600

st.set_page_config(page_title="Pipe Field", layout="wide")
st.title("Pipe Field")

with st.sidebar:
    st.header("Field Settings")

    multiple = st.checkbox("Multiple pipes", value=True,
                           help="Spawn 2 (sometimes 3) pipes per batch instead of 1")
    joint_mode = st.selectbox(
        "Joint Type",
        ['elbow', 'ball', 'mixed', 'cycle'],
        index=0
    )
    texture_path = st.text_input("Texture Path", value="",
                                 help="Image file used as pipe texture (blank = random colours)")
    reset_interval = st.slider("Reset Interval (s)", 4.0, 60.0, (16.0, 24.0), 1.0)

    st.header("Playback")
    frames_per_run = st.slider("Frames per refresh", 1, 600, 60, 1)
    style = st.selectbox("Render Style", ['filled', 'outline'], index=0)
    seed = st.number_input("Seed", min_value=0, value=0, step=1,
                           help="0 = unseeded")

    clear_fast = st.button("Clear", type="primary")
    clear_slow = st.button("Slow clear")
    random_view = st.button("Random view")

    if st.button("Restart"):
        for key in ('field', 'frame', 'camera', 'overlay', 'seed'):
            st.session_state.pop(key, None)

if 'field' not in st.session_state or st.session_state.get('seed') != seed:
    logging_config.setup_logging()
    rng = random.Random(seed) if seed else random.Random()
    st.session_state.frame = 0
    st.session_state.seed = seed
    st.session_state.camera = pipe_render.Camera()
    st.session_state.overlay = dissolve.SvgOverlay(VIEW_WIDTH, VIEW_HEIGHT)
    transition = dissolve.DissolveTransition(st.session_state.overlay,
                                             VIEW_WIDTH, VIEW_HEIGHT, rng=rng)
    field = pipe_field.PipeField(
        pipe_render.SvgPipeScene(), transition,
        camera=st.session_state.camera, rng=rng,
        clock=lambda: st.session_state.frame / FRAME_RATE,
    )
    st.session_state.field = field

field = st.session_state.field
camera = st.session_state.camera
overlay = st.session_state.overlay

try:
    field.config = pipe_field.FieldConfig(
        multiple=multiple,
        joint_mode=joint_mode,
        texture_path=texture_path or None,
        reset_interval=reset_interval,
    )
except ValueError as exc:
    st.error(str(exc))

if not field.timer.armed:
    field.schedule_reset()
if clear_fast:
    field.request_reset(fast=True)
if clear_slow:
    field.request_reset(fast=False)
if random_view:
    camera.random_look(field.rng)

progress_bar = st.progress(0, text="Growing pipes...")
for i in range(frames_per_run):
    st.session_state.frame += 1
    field.tick()
    progress_bar.progress((i + 1) / frames_per_run,
                          text="Frame {} / {}".format(i + 1, frames_per_run))
progress_bar.empty()

pipes_svg = pipe_render.render_svg(field.scene, camera, VIEW_WIDTH, VIEW_HEIGHT,
                                   style=style, background='#111111')

cols = st.columns(4)
cols[0].metric("Pipes", len(field.pipes))
cols[1].metric("Occupied cells", len(field.grid))
cols[2].metric("Batches", field.batches_spawned)
cols[3].metric("Overlay cover", "{:.0%}".format(overlay.coverage()))

html_content = f'''
<div style="position:relative; width:{VIEW_WIDTH}px; height:{VIEW_HEIGHT}px;">
    <div style="position:absolute; inset:0; visibility:{'visible' if field.should_render else 'hidden'};">
        {pipes_svg}
    </div>
    <div style="position:absolute; inset:0;">
        {overlay.as_svg()}
    </div>
</div>
'''
components.html(html_content, height=VIEW_HEIGHT + 20, scrolling=False)

st.download_button(
    "Download SVG",
    pipes_svg,
    file_name="pipes.svg",
    mime="image/svg+xml"
)
