"""
Test suite for scan discovery
"""

import shutil
import tempfile
import unittest
from pathlib import Path
import sys

import numpy as np

# Import the data discovery module
sys.path.append(str(Path(__file__).parent.parent / "src"))
from scan_fusion.geometry import PointCloud
from scan_fusion.preprocessing.data_discovery import ScanDiscovery
from scan_fusion.preprocessing.loader import save_point_cloud


class TestScanDiscovery(unittest.TestCase):
    """Test cases for the ScanDiscovery class."""

    def setUp(self):
        """Create a scan directory with scans 0, 1, 2 and 10 plus unrelated files."""
        self.scan_dir = Path(tempfile.mkdtemp())
        cloud = PointCloud(np.arange(30, dtype=float).reshape(10, 3))
        for i in (0, 1, 2, 10):
            save_point_cloud(self.scan_dir / f"scan_{i}.ply", cloud)
        save_point_cloud(self.scan_dir / "merged.ply", cloud)
        (self.scan_dir / "scan_notes.txt").write_text("not a scan")
        self.discovery = ScanDiscovery(str(self.scan_dir))

    def tearDown(self):
        shutil.rmtree(self.scan_dir, ignore_errors=True)

    def test_discover_orders_by_numeric_index(self):
        scan_set = self.discovery.discover()
        names = [p.name for p in scan_set.paths]
        self.assertEqual(names, ["scan_0.ply", "scan_1.ply", "scan_2.ply", "scan_10.ply"])
        self.assertTrue(scan_set.complete)

    def test_expected_paths_reports_missing_scans(self):
        scan_set = self.discovery.collect(5)
        self.assertEqual(len(scan_set), 5)
        self.assertEqual([p.name for p in scan_set.missing], ["scan_3.ply", "scan_4.ply"])
        self.assertFalse(scan_set.complete)

    def test_collect_without_count_discovers(self):
        self.assertEqual(len(self.discovery.collect()), 4)

    def test_invalid_files(self):
        truncated = self.scan_dir / "scan_1.ply"
        truncated.write_bytes(truncated.read_bytes()[:-4])
        scan_set = self.discovery.collect(4)
        invalid = [p.name for p in self.discovery.invalid_files(scan_set)]
        self.assertEqual(invalid, ["scan_1.ply", "scan_3.ply"])

    def test_custom_pattern(self):
        discovery = ScanDiscovery(str(self.scan_dir), pattern="scan_{index}.ply")
        self.assertEqual(len(discovery.discover()), 4)
        with self.assertRaises(ValueError):
            ScanDiscovery(str(self.scan_dir), pattern="scan.ply")

    def test_missing_directory(self):
        discovery = ScanDiscovery(str(self.scan_dir / "nope"))
        self.assertEqual(len(discovery.discover()), 0)

    def test_count_must_be_positive(self):
        with self.assertRaises(ValueError):
            self.discovery.expected_paths(0)


if __name__ == "__main__":
    unittest.main()
