import json

import numpy as np
import pytest

from stipple_partition.config import PartitionConfig
from stipple_partition.core.builder import PartitionTree
from stipple_partition.core.structures import Rect, StreamCell, CellStream
from stipple_partition.core.sumtable import PlaneSumTable
from stipple_partition.io.loaders import load_frames, validate_frames
from stipple_partition.io.exporters import (
    export_cells, export_cells_json, export_frames_npy, export_statistics, render_frame
)


def test_load_single_npy(tmp_path):
    path = tmp_path / 'image.npy'
    np.save(path, np.ones((3, 4), dtype=np.uint16))
    frames, meta = load_frames(str(path))
    assert len(frames) == 1
    assert meta['format'] == 'npy'
    assert meta['shape'] == [3, 4]
    assert meta['n_frames'] == 1


def test_load_colour_and_stack(tmp_path):
    colour = tmp_path / 'colour.npy'
    np.save(colour, np.zeros((5, 6, 3), dtype=np.uint8))
    frames, _ = load_frames(str(colour))
    assert len(frames) == 1 and frames[0].shape == (5, 6, 3)

    stack = tmp_path / 'stack.npy'
    np.save(stack, np.zeros((4, 5, 6), dtype=np.uint16))
    frames, _ = load_frames(str(stack))
    assert len(frames) == 4 and frames[0].shape == (5, 6)


def test_load_npz(tmp_path):
    path = tmp_path / 'frames.npz'
    np.savez(path, b=np.full((2, 2), 2, dtype=np.uint16), a=np.full((2, 2), 1, dtype=np.uint16))
    frames, meta = load_frames(str(path))
    assert [int(f[0, 0]) for f in frames] == [1, 2]
    assert meta['format'] == 'npz'

    named = tmp_path / 'named.npz'
    np.savez(named, frames=np.zeros((3, 2, 2), dtype=np.uint16), other=np.zeros(1))
    frames, _ = load_frames(str(named))
    assert len(frames) == 3


def test_load_directory(tmp_path):
    for i in (2, 0, 1):
        np.save(tmp_path / f'frame_{i:03d}.npy', np.full((2, 3), i, dtype=np.uint16))
    frames, meta = load_frames(str(tmp_path))
    assert [int(f[0, 0]) for f in frames] == [0, 1, 2]
    assert meta['format'] == 'dir'


def test_load_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_frames(str(tmp_path / 'missing.npy'))

    other = tmp_path / 'image.png'
    other.write_bytes(b'not an image')
    with pytest.raises(ValueError):
        load_frames(str(other))

    empty_dir = tmp_path / 'empty'
    empty_dir.mkdir()
    with pytest.raises(ValueError):
        load_frames(str(empty_dir))


@pytest.mark.parametrize("frames", [
    [],
    [np.zeros((2, 2)), np.zeros((3, 2))],
    [np.zeros((2, 2, 2))],
    [np.array([[np.inf, 0.0]])],
])
def test_validate_frames_rejects(frames):
    with pytest.raises(ValueError):
        validate_frames(frames)


def test_render_frame():
    stream = CellStream([
        StreamCell(Rect(0, 0, 2, 2), 0, 1, 10),
        StreamCell(Rect(2, 0, 4, 2), 0, 1, 20),
        StreamCell(Rect(0, 0, 4, 2), 1, 2, 30),
    ])
    frame = render_frame(stream, (2, 4), z=0)
    assert frame.tolist() == [[10, 10, 20, 20], [10, 10, 20, 20]]
    assert np.all(render_frame(stream, (2, 4), z=1) == 30)
    assert np.all(render_frame(stream, (2, 4), z=5) == 0)


def test_export_json_and_frames(tmp_path, random_samples):
    table = PlaneSumTable.from_samples(random_samples)
    tree = PartitionTree(table, PartitionConfig(generations=3))
    tree.run()

    export_cells(tree, str(tmp_path), ['json', 'npy', 'none'], random_samples.shape, 1, {'format': 'npy'})

    with open(tmp_path / 'cells.json', encoding='utf-8') as f:
        data = json.load(f)
    assert data['metadata'] == {'format': 'npy'}
    assert len(data['cells']) == len(tree.all_cells())
    assert set(data['cells'][0]) == {'rect', 'zmin', 'zmax', 'value', 'level'}

    frames = np.load(tmp_path / 'frames.npy')
    assert frames.shape == (1,) + random_samples.shape
    assert frames.dtype == np.uint16
    assert np.all(frames > 0)


def test_export_cells_json_skips_arrays(tmp_path):
    out = tmp_path / 'cells.json'
    export_cells_json(CellStream(), out, {'name': 'x', 'array': np.zeros(3)})
    data = json.loads(out.read_text(encoding='utf-8'))
    assert data == {'metadata': {'name': 'x'}, 'cells': []}


def test_export_frames_npy_stack(tmp_path):
    stream = CellStream([StreamCell(Rect(0, 0, 2, 2), 0, 2, 7)])
    out = tmp_path / 'frames.npy'
    export_frames_npy(stream, (2, 2), 3, out)
    frames = np.load(out)
    assert frames.shape == (3, 2, 2)
    assert frames[:2].tolist() == [[[7, 7], [7, 7]]] * 2
    assert np.all(frames[2] == 0)


def test_export_statistics(tmp_path, hot_pixel_table):
    config = PartitionConfig()
    tree = PartitionTree(hot_pixel_table, config)
    tree.run()

    out = tmp_path / 'stats' / 'statistics.json'
    export_statistics(tree, out, build_time=0.5, peak_memory_mb=12.0, cpu_time_sec=0.25, config=config)

    data = json.loads(out.read_text(encoding='utf-8'))
    assert data['input']['total_mass'] == 65535
    assert data['input']['mass_scale'] == 1
    assert data['tree']['mass_conserved'] is True
    assert data['tree']['active_cells'] == 0
    assert data['cells']['max_mass'] == 65535
    assert data['performance']['cells_per_sec_cpu'] == pytest.approx(len(tree.all_cells()) / 0.25)
    assert data['config']['strategy'] == 'dipole'
