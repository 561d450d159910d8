from pathlib import Path

import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from shotscan.history_store import PatternHistory
from shotscan.main import main


def _write_target(path: Path) -> Path:
    image = np.full((400, 400, 3), 250, dtype=np.uint8)
    for center in [(200, 200), (225, 200), (175, 200), (200, 225), (200, 175)]:
        cv2.circle(image, center, 5, (20, 20, 20), -1)
    assert cv2.imwrite(str(path), image)
    return path


def test_cli_analyses_image_and_records_history(tmp_path: Path, capsys):
    image_path = _write_target(tmp_path / "target.png")
    history_path = tmp_path / "history.json"
    export_dir = tmp_path / "export"

    code = main([str(image_path), "--history", str(history_path), "--export", str(export_dir)])
    assert code == 0

    output = capsys.readouterr().out
    assert output.count("accepted") == 5
    assert "Tight & Centered" in output
    assert (export_dir / "target_summary.csv").exists()
    history = PatternHistory.load(history_path)
    assert len(history) == 1
    assert history.records[0].shot_count == 5


def test_cli_fits_semi_axes_to_target_shape(tmp_path: Path, capsys):
    image_path = _write_target(tmp_path / "target.png")
    assert main([str(image_path), "--fit-target"]) == 0
    assert capsys.readouterr().out.count("accepted") == 5


def test_cli_reports_suppressed_analysis(tmp_path: Path, capsys):
    image = np.full((200, 200), 250, dtype=np.uint8)
    cv2.circle(image, (100, 100), 4, 20, -1)
    image_path = tmp_path / "single.png"
    assert cv2.imwrite(str(image_path), image)

    assert main([str(image_path)]) == 0
    assert "Need at least 3 shots" in capsys.readouterr().out


def test_cli_missing_image_fails(tmp_path: Path):
    assert main([str(tmp_path / "absent.png")]) == 1


def test_cli_rejects_bad_geometry(tmp_path: Path):
    image_path = _write_target(tmp_path / "target.png")
    with pytest.raises(SystemExit):
        main([str(image_path), "--semi-axes", "0", "0.4"])
