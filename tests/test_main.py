"""CLI transport tests: stdin / file in, JSON out."""

import base64
import io
import json

import cv2
import numpy as np
import pytest

import main
import segmenter
from segmenter import IrisData

FIXED = IrisData(60, 60, 20, 60, 60, 45, 1.0)


def b64_png(gray):
    ok, buf = cv2.imencode(".png", gray)
    assert ok
    return base64.b64encode(buf.tobytes()).decode()


@pytest.fixture
def fixed_segmenter(monkeypatch):
    monkeypatch.setattr(segmenter.IrisSegmenter, "segment", lambda self, image: FIXED)


def run_cli(monkeypatch, capsys, stdin_text, argv=()):
    monkeypatch.setattr("sys.stdin", io.StringIO(stdin_text))
    code = main.main(list(argv))
    out = capsys.readouterr().out
    return code, out


def test_stdin_eye_is_segmented(monkeypatch, capsys, fixed_segmenter, dark_disk_on_texture):
    code, out = run_cli(monkeypatch, capsys, "data:image/png;base64," + b64_png(dark_disk_on_texture))
    assert code == 0
    body = json.loads(out)
    assert body["irisRadius"] == 45
    assert body["eyeConfidence"] == pytest.approx(1.0)


def test_stdin_non_eye_is_rejected_with_exit_zero(monkeypatch, capsys):
    code, out = run_cli(monkeypatch, capsys, b64_png(np.full((100, 100), 255, dtype=np.uint8)))
    assert code == 0
    assert json.loads(out)["errorCode"] == "NOT_AN_EYE"


def test_stdout_carries_only_json(monkeypatch, capsys):
    code, out = run_cli(monkeypatch, capsys, b64_png(np.zeros((50, 50), dtype=np.uint8)))
    assert code == 0
    assert len(out.strip().splitlines()) == 1
    json.loads(out)


def test_detect_only_flag(monkeypatch, capsys, dark_disk_on_texture):
    code, out = run_cli(monkeypatch, capsys, b64_png(dark_disk_on_texture), ["--detect-only"])
    assert code == 0
    body = json.loads(out)
    assert body["isEye"] is True
    assert "pupilCenterX" not in body


def test_image_path_argument(monkeypatch, capsys, tmp_path, fixed_segmenter, dark_disk_on_texture):
    path = tmp_path / "eye.png"
    cv2.imwrite(str(path), dark_disk_on_texture)
    code, out = run_cli(monkeypatch, capsys, "", [str(path)])
    assert code == 0
    assert json.loads(out)["pupilRadius"] == 20


@pytest.mark.parametrize("stdin_text", ["", "   \n", "data:image/png;base64", "@@@@"])
def test_bad_input_exits_one(monkeypatch, capsys, stdin_text):
    code, out = run_cli(monkeypatch, capsys, stdin_text)
    assert code == 1
    assert out == ""


def test_missing_file_exits_one(monkeypatch, capsys, tmp_path):
    code, out = run_cli(monkeypatch, capsys, "", [str(tmp_path / "missing.png")])
    assert code == 1
    assert out == ""
