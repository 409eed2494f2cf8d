import subprocess
import sys
from pathlib import Path

from contamcheck.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "contamcheck"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "contamcheck check" in cp.stdout


def test_make_toy_data_dry_run(tmp_path: Path) -> None:
    outdir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(outdir), "--dry-run"])
    assert cp.returncode == 0
    assert "Would write" in cp.stdout
    assert not outdir.exists()


def test_make_toy_data_and_check(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir)])
    assert cp.returncode == 0
    assert (toy_dir / "assembly.bam").exists()

    outdir = tmp_path / "out"
    cp = _run_cli(
        [
            "check",
            "--reference",
            str(toy_dir / "contaminant.fa"),
            "--outdir",
            str(outdir),
            "--no-progress",
            str(toy_dir / "assembly.bam"),
        ]
    )
    assert cp.returncode == 0, cp.stderr
    assert "polluting fragments" in cp.stdout
    assert (outdir / "report.html").exists()
    assert (outdir / "summary.tsv").exists()
    assert (outdir / "assembly.bam" / "fragments.tsv.gz").exists()
    assert (outdir / "assembly.bam" / "plots" / "class_counts.png").exists()
    assert (outdir / "logs" / "check.log").exists()


def test_check_table_output(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(
        [
            "check",
            "-T",
            "-a",
            "--no-progress",
            "-r",
            toy["reference_fa"],
            toy["assembly_bam"],
        ]
    )
    assert cp.returncode == 0, cp.stderr
    lines = cp.stdout.strip().split("\n")
    assert lines[0].startswith("#Filename")
    assert len(lines) == 2
    assert len(lines[1].split("\t")) == len(lines[0].split("\t"))


def test_too_few_positions_message(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(
        [
            "check",
            "--no-progress",
            "--min-strong",
            "1000",
            "-r",
            toy["reference_fa"],
            toy["assembly_bam"],
        ]
    )
    assert cp.returncode == 2
    assert "TooFewDiagnosticPositionsError" in cp.stderr
    assert "--shoot-foot" in cp.stderr


def test_bad_span_is_rejected(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(["check", "-s", "50-10", "-r", toy["reference_fa"], toy["assembly_bam"]])
    assert cp.returncode != 0
    assert "Empty span" in cp.stderr
