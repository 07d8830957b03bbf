"""Test the optimize.py CLI in single and batch mode.

Run: pytest tests/test_optimize_script.py -v
"""
import importlib.util
import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from src.utils import fs

SCRIPT = Path(__file__).parent.parent / "scripts" / "optimize.py"


@pytest.fixture(scope="module")
def cli():
    module_spec = importlib.util.spec_from_file_location("optimize_cli", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def art(temp_dir):
    arr = np.full((20, 30, 3), 180, dtype=np.uint8)
    arr[2:18, 2:28] = 0
    path = temp_dir / "design.png"
    Image.fromarray(arr).save(path)
    return path


def _run(cli, monkeypatch, *argv) -> int:
    monkeypatch.setattr(sys, "argv", ["optimize.py", *map(str, argv)])
    return cli.main()


class TestSingleMode:

    def test_writes_png_and_manifest(self, cli, monkeypatch, art, temp_dir):
        output = temp_dir / "out" / "design_dtf.png"
        code = _run(cli, monkeypatch, art, "--output", output, "--substrate", "black",
                    "--style", "grunge", "--seed", "7", "--manifest")
        assert code == 0

        with Image.open(output) as img:
            assert img.size == (30, 20)
            assert img.mode == "RGBA"

        manifest = fs.load_yaml(output.with_suffix(".yaml"))
        assert manifest["substrate"] == "black"
        assert manifest["style"] == "grunge"
        assert manifest["width"] == 30
        assert "knockout" in manifest["timings_s"]

    def test_bad_source_returns_1(self, cli, monkeypatch, temp_dir):
        bad = temp_dir / "bad.png"
        bad.write_bytes(b"garbage")
        assert _run(cli, monkeypatch, bad, "--output", temp_dir / "x.png") == 1
        assert not (temp_dir / "x.png").exists()

    def test_invalid_substrate_returns_2(self, cli, monkeypatch, art):
        assert _run(cli, monkeypatch, art, "--substrate", "navy") == 2

    def test_multiple_sources_need_output_dir(self, cli, monkeypatch, art):
        assert _run(cli, monkeypatch, art, art) == 2


class TestBatchMode:

    def test_batch_writes_each_output(self, cli, monkeypatch, art, temp_dir):
        second = temp_dir / "second.png"
        Image.fromarray(np.full((8, 8, 3), 90, dtype=np.uint8)).save(second)
        out_dir = temp_dir / "batch"

        code = _run(cli, monkeypatch, art, second, "--output-dir", out_dir,
                    "--substrate", "white", "--workers", "1")
        assert code == 0
        assert sorted(p.name for p in out_dir.iterdir()) == ["design_dtf.png", "second_dtf.png"]

    def test_output_name_strips_query(self, cli):
        assert cli._output_name("https://cdn.example.com/art/tee.png?sig=abc") == "tee_dtf.png"
        assert cli._output_name("art/poster.jpg") == "poster_dtf.png"

    def test_colliding_names_made_unique(self, cli):
        names = cli.batch_output_names(["a/x.png", "b/x.png", "c/y.png", "c/y.png", "z.png"])
        assert names == ["x_1_dtf.png", "x_2_dtf.png", "y_3_dtf.png", "y_4_dtf.png", "z_dtf.png"]

    def test_batch_same_stem_writes_both(self, cli, monkeypatch, temp_dir):
        for folder, value in (("a", 40), ("b", 220)):
            (temp_dir / folder).mkdir()
            Image.fromarray(np.full((6, 6, 3), value, dtype=np.uint8)).save(temp_dir / folder / "x.png")
        out_dir = temp_dir / "batch"

        code = _run(cli, monkeypatch, temp_dir / "a" / "x.png", temp_dir / "b" / "x.png",
                    "--output-dir", out_dir, "--substrate", "white", "--workers", "1")
        assert code == 0
        assert sorted(p.name for p in out_dir.iterdir()) == ["x_1_dtf.png", "x_2_dtf.png"]
        assert (out_dir / "x_1_dtf.png").read_bytes() != (out_dir / "x_2_dtf.png").read_bytes()
