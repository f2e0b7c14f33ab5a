import os

import pytest

from projects.filereview.dryrun import DryRunAnalyzer, DryRunOptions, MIN_ESTIMATE_MS, render_plan
from projects.filereview.ordering import order_files


def test_plan_skips_missing_files_without_raising(make_tree, tmp_path):
    files = make_tree(["a.py", "pkg/b.py"])
    missing = str(tmp_path / "gone.py")
    plan = DryRunAnalyzer(DryRunOptions(root=str(tmp_path))).create_analysis_plan(files + [missing, str(tmp_path / "pkg")])

    assert plan.total_files == 2
    assert plan.skipped_files == [missing, str(tmp_path / "pkg")]
    assert plan.processing_order == files
    assert plan.files_by_directory == {".": [files[0]], "pkg": [files[1]]}
    assert plan.directory_count == 2
    reasons = {d.path: d.reason for d in plan.file_details}
    assert reasons[missing] == "file not found"
    assert reasons[str(tmp_path / "pkg")] == "not a regular file"


def test_estimate_scales_with_size(tmp_path):
    small = tmp_path / "small.py"
    small.write_text("x")
    big = tmp_path / "big.py"
    big.write_text("x" * 4096)

    analyzer = DryRunAnalyzer(DryRunOptions(base_estimate_ms=500, per_kb_ms=250))
    assert analyzer.check_file(str(small)).estimated_ms == 500
    assert analyzer.check_file(str(big)).estimated_ms == 500 + 4 * 250

    plan = analyzer.create_analysis_plan([str(small), str(big)])
    assert plan.estimated_duration_ms == 500 + 1500
    assert plan.total_size == 4097


def test_estimate_has_a_floor(tmp_path):
    f = tmp_path / "a.py"
    f.write_text("x")
    details = DryRunAnalyzer(DryRunOptions(base_estimate_ms=0, per_kb_ms=0)).check_file(str(f))
    assert details.estimated_ms == MIN_ESTIMATE_MS


def test_duplicates_are_planned_once(make_tree):
    files = make_tree(["a.py"])
    plan = DryRunAnalyzer().create_analysis_plan(files + files)
    assert plan.total_files == 1
    assert len(plan.file_details) == 1


def test_empty_plan():
    plan = DryRunAnalyzer().create_analysis_plan([])
    assert plan.total_files == 0
    assert plan.estimated_duration_ms == 0
    assert plan.average_file_size == 0.0


def test_validate_files(make_tree, tmp_path):
    files = make_tree(["a.py"])
    valid, invalid = DryRunAnalyzer().validate_files(files + [str(tmp_path / "nope.py")])
    assert valid == files
    assert invalid == [(str(tmp_path / "nope.py"), "file not found")]


def test_render_plan_lists_skips(make_tree, tmp_path):
    files = make_tree(["a.py"])
    plan = DryRunAnalyzer(DryRunOptions(root=str(tmp_path))).create_analysis_plan(files + [str(tmp_path / "nope.py")])
    lines = render_plan(plan)
    assert "Files to process: 1" in lines
    assert "Skipped files: 1" in lines
    assert any(line.startswith("[WARNING] skip") and "nope.py" in line for line in lines)


def test_order_files(tmp_path):
    names = ["file10.py", "File2.py", "file1.py"]
    paths = []
    for i, name in enumerate(names):
        path = tmp_path / name
        path.write_text("x" * (10 - i))
        os.utime(path, (1_000_000 + i, 1_000_000 + i))
        paths.append(str(path))

    assert [os.path.basename(p) for p in order_files(paths, "alphabetical")] == ["file1.py", "file10.py", "File2.py"]
    assert [os.path.basename(p) for p in order_files(paths, "natural")] == ["file1.py", "File2.py", "file10.py"]
    assert [os.path.basename(p) for p in order_files(paths, "size")] == ["file1.py", "File2.py", "file10.py"]
    assert [os.path.basename(p) for p in order_files(paths, "modified")] == ["file1.py", "File2.py", "file10.py"]


def test_order_files_rejects_unknown_ordering():
    with pytest.raises(ValueError):
        order_files(["a"], "random")


def test_plan_survives_paths_the_os_rejects(make_tree):
    files = make_tree(["a.py"])
    plan = DryRunAnalyzer().create_analysis_plan(files + ["bad\x00name.py"])

    assert plan.total_files == 1
    assert plan.skipped_files == ["bad\x00name.py"]
    reasons = {d.path: d.reason for d in plan.file_details}
    assert reasons["bad\x00name.py"].startswith("invalid path")
    assert order_files(["bad\x00name.py"] + files, "size") == files + ["bad\x00name.py"]
