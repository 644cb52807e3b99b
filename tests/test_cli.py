import json

import pytest

from pdf_region_service.cli import main, output_filename

from conftest import PNG_SIGNATURE


@pytest.fixture
def request_file(tmp_path):
    path = tmp_path / "request.json"
    path.write_text(json.dumps({
        "requestId": "cli-1",
        "file": {"url": "https://files.example/doc.pdf"},
        "images": [
            {"imageId": "figure/1", "pageIndex": 0, "coordinates": [0, 0, 500, 500]},
            {"imageId": "table-2", "pageIndex": 1, "coordinates": [500, 200, 900, 700]},
            {"imageId": "flat", "pageIndex": 0, "coordinates": [300, 300, 300, 600]},
        ],
    }))
    return path


def test_extracts_local_pdf(tmp_path, request_file, two_page_pdf):
    pdf_path = tmp_path / "doc.pdf"
    pdf_path.write_bytes(two_page_pdf)
    out_dir = tmp_path / "out"

    exit_code = main([str(request_file), str(out_dir), "--pdf", str(pdf_path)])

    assert exit_code == 0
    assert (out_dir / "figure_1.png").read_bytes()[:8] == PNG_SIGNATURE
    assert (out_dir / "table-2.png").exists()
    assert not (out_dir / "flat.png").exists()

    manifest = json.loads((out_dir / "manifest.json").read_text())
    assert manifest["request_id"] == "cli-1"
    assert manifest["source"] == str(pdf_path)
    summary = manifest["processing_info"]["extraction_summary"]
    assert summary["total_images"] == 3
    assert summary["successful_extractions"] == 2

    results = {r["image_id"]: r for r in manifest["results"]}
    assert results["figure/1"]["file"] == "figure_1.png"
    assert results["flat"]["status"] == "failed"
    assert results["flat"]["error_code"] == "CROP_CONVERSION_FAILED"


def test_missing_request_file(tmp_path):
    assert main([str(tmp_path / "missing.json"), str(tmp_path / "out")]) == 1


def test_missing_pdf_file(tmp_path, request_file):
    assert main([str(request_file), str(tmp_path / "out"), "--pdf", str(tmp_path / "no.pdf")]) == 1


def test_invalid_request_file(tmp_path):
    path = tmp_path / "request.json"
    path.write_text(json.dumps({"requestId": "x", "images": []}))
    assert main([str(path), str(tmp_path / "out")]) == 1


def test_colliding_image_ids_get_distinct_files(tmp_path, two_page_pdf):
    pdf_path = tmp_path / "doc.pdf"
    pdf_path.write_bytes(two_page_pdf)
    request_path = tmp_path / "request.json"
    request_path.write_text(json.dumps({
        "requestId": "cli-2",
        "file": {"url": "https://files.example/doc.pdf"},
        "images": [
            {"imageId": image_id, "pageIndex": 0, "coordinates": [0, 0, 500, 500]}
            for image_id in ["a", "a_2", "a"]
        ],
    }))
    out_dir = tmp_path / "out"

    assert main([str(request_path), str(out_dir), "--pdf", str(pdf_path)]) == 0

    manifest = json.loads((out_dir / "manifest.json").read_text())
    files = [r["file"] for r in manifest["results"]]
    assert len(set(files)) == 3
    assert sorted(p.name for p in out_dir.glob("*.png")) == sorted(files)


def test_output_filenames_are_unique():
    used = set()
    assert output_filename("fig 1", 0, used) == "fig_1.png"
    assert output_filename("fig 1", 3, used) == "fig_1_3.png"
    assert output_filename("../..", 4, used) == "image.png"

    used = {"a.png", "a_2.png"}
    assert output_filename("a", 2, used) == "a_2_1.png"
    assert output_filename("a", 2, used) == "a_2_2.png"
