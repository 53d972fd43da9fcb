"""
Point Cloud Visualization Tools

Renders PointCloud snapshots (merged scans or the live map export) with their
own RGB colors. Only the CLIs use this module; the alignment and fusion core
does not depend on it.
"""

from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import plotly.graph_objects as go

from ..geometry.point_cloud import PointCloud


class PointCloudVisualizer:
    """A class for visualizing colored point clouds."""

    def __init__(self, backend: str = 'plotly', point_size: float = 1.5):
        """
        Args:
            backend: 'plotly'
            point_size: Marker size in pixels
        """
        if backend != 'plotly':
            raise ValueError(f"Unsupported backend: '{backend}'. Choose 'plotly'.")
        self.backend = backend
        self.point_size = point_size

    # ----------------- Public API -----------------
    def build_figure(self, point_clouds: Sequence[PointCloud], names: Sequence[str],
                     sample_size: Optional[int] = None, title: str = "Point Cloud Visualization") -> go.Figure:
        if len(point_clouds) != len(names):
            raise ValueError("The number of point clouds must match the number of names.")
        fig = go.Figure()
        for pc, name in zip(point_clouds, names):
            if sample_size:
                pc = self._downsample(pc, sample_size)
            pos = pc.positions
            fig.add_trace(go.Scatter3d(
                x=pos[:, 0], y=pos[:, 1], z=pos[:, 2],
                mode='markers',
                marker=dict(size=self.point_size, color=self._rgb_strings(pc)),
                name=name,
            ))
        fig.update_layout(
            title=title,
            scene=dict(
                xaxis=dict(visible=False), yaxis=dict(visible=False), zaxis=dict(visible=False), aspectmode='data'
            ),
            margin=dict(l=0, r=0, t=40, b=0),
        )
        return fig

    def visualize_clouds(self, point_clouds: Sequence[PointCloud], names: Sequence[str],
                         sample_size: Optional[int] = None, output_html: Optional[Union[str, Path]] = None):
        """Show the clouds in the browser, or write them to `output_html`."""
        fig = self.build_figure(point_clouds, names, sample_size=sample_size)
        if output_html is not None:
            Path(output_html).parent.mkdir(parents=True, exist_ok=True)
            fig.write_html(str(output_html))
            return fig
        fig.show(renderer="browser")
        return fig

    # ----------------- Internal helpers -----------------
    def _downsample(self, point_cloud: PointCloud, sample_size: int) -> PointCloud:
        if sample_size >= len(point_cloud):
            return point_cloud
        indices = np.random.choice(len(point_cloud), sample_size, replace=False)
        return point_cloud.take(np.sort(indices))

    @staticmethod
    def _rgb_strings(point_cloud: PointCloud) -> list:
        return [f"rgb({r},{g},{b})" for r, g, b in point_cloud.colors.tolist()]
