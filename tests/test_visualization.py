"""Tests for the plotly snapshot renderer."""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from scan_fusion.geometry import PointCloud
from scan_fusion.visualization import PointCloudVisualizer


def _cloud(n: int = 100) -> PointCloud:
    rng = np.random.default_rng(0)
    return PointCloud(rng.uniform(size=(n, 3)), rng.integers(0, 256, size=(n, 3)))


def test_build_figure_uses_point_colors():
    cloud = _cloud(5)
    fig = PointCloudVisualizer().build_figure([cloud], ["scan"])

    assert len(fig.data) == 1
    trace = fig.data[0]
    assert trace.name == "scan"
    r, g, b = cloud.colors[0].tolist()
    assert trace.marker.color[0] == f"rgb({r},{g},{b})"


def test_sample_size_limits_points():
    fig = PointCloudVisualizer().build_figure([_cloud(100), _cloud(10)], ["a", "b"], sample_size=20)
    assert len(fig.data[0].x) == 20
    assert len(fig.data[1].x) == 10


def test_visualize_clouds_writes_html(tmp_path):
    out = tmp_path / "view" / "map.html"
    PointCloudVisualizer().visualize_clouds([_cloud()], ["map"], output_html=out)
    assert out.exists()


def test_mismatched_names_and_unknown_backend():
    with pytest.raises(ValueError):
        PointCloudVisualizer().build_figure([_cloud()], ["a", "b"])
    with pytest.raises(ValueError):
        PointCloudVisualizer(backend="pyvista")
