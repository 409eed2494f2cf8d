from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .assembly import read_fasta
from .checker import check_file
from .errors import ContamCheckError
from .models import CheckSettings
from .plotting import plot_class_counts, plot_vote_hist
from .report import format_table, format_text, render_report, table_header, table_row
from .toy_data import make_toy_data
from .utils import ensure_outdir, parse_span


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _span(text: str) -> tuple:
    try:
        return parse_span(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"
    if not isinstance(err, ContamCheckError):
        logging.getLogger("contamcheck").debug("Unexpected error", exc_info=err)

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="contamcheck",
        description=(
            "contamcheck: estimate contamination of an assembly (e.g. ancient mtDNA) by a known "
            "contaminant, using positions where contaminant and assembly consensus disagree."
        ),
    )
    p.add_argument("--version", action="version", version=f"contamcheck {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny contaminant reference, assembly consensus and BAM for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # check
    # -----------------
    c = sub.add_parser(
        "check",
        help="Classify assembled fragments as endogenous or contaminant and estimate contamination.",
    )
    c.add_argument(
        "inputs",
        nargs="+",
        help="Fragment alignments (BAM/SAM/CRAM) against the assembly consensus.",
    )
    c.add_argument(
        "-r",
        "--reference",
        required=True,
        type=_path_exists,
        help="FASTA file with the likely contaminant (consensus, may contain ambiguity codes).",
    )
    c.add_argument(
        "--consensus",
        default=None,
        type=_path_exists,
        help="Assembly consensus FASTA (default: <input stem>.fa next to each input).",
    )
    c.add_argument(
        "-a",
        "--ancient",
        action="store_true",
        help="Treat DNA as ancient (i.e. likely deaminated).",
    )
    c.add_argument(
        "-t",
        "--transversions",
        action="store_true",
        help="Treat only transversions as diagnostic.",
    )
    c.add_argument(
        "-s",
        "--span",
        type=_span,
        default=None,
        metavar="M-N",
        help="Look only at assembly positions M to N (1-based, inclusive).",
    )
    c.add_argument(
        "-n",
        "--numpos",
        type=int,
        default=1,
        help="Require N diagnostic positions in a single fragment (default: 1).",
    )
    c.add_argument(
        "-d",
        "--maxd",
        type=int,
        default=None,
        help="Maximum edit distance between reference and assembly (default: 10%% of length).",
    )
    c.add_argument(
        "--min-strong",
        type=int,
        default=40,
        help="Stop when fewer strongly diagnostic positions are found (default: 40).",
    )
    c.add_argument(
        "-F",
        "--shoot-foot",
        action="store_true",
        help="Continue even with fewer strongly diagnostic positions than --min-strong.",
    )
    c.add_argument(
        "--matrix",
        default="NUC.4.4",
        help="Substitution matrix for re-aligning fragments (Biopython name or file).",
    )
    c.add_argument("--gap-open", type=float, default=-10.0, help="Gap open score for fragments.")
    c.add_argument("--gap-extend", type=float, default=-2.0, help="Gap extend score for fragments.")
    c.add_argument("--keep-duplicates", action="store_true", help="Do not skip duplicate reads.")
    c.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Do not look for a higher numbered iteration of each input.",
    )
    c.add_argument(
        "-T",
        "--table",
        action="store_true",
        help="Output as tables (easier for scripts, harder on the eyes).",
    )
    c.add_argument(
        "--outdir",
        default=None,
        help="Write summary.json, fragments.tsv.gz, plots and report.html here.",
    )
    c.add_argument("--no-progress", action="store_true", help="Do not show progress bars.")
    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------
def cmd_quickstart() -> int:
    lines = [
        "contamcheck quickstart (copy/paste):",
        "",
        "1) One assembly against a contaminant consensus:",
        "   contamcheck check \\",
        "     --reference human_mt_consensus.fa \\",
        "     sample.bam",
        "   (sample.fa next to sample.bam holds the assembly consensus)",
        "",
        "2) Ancient DNA, several assemblies, tabular output:",
        "   contamcheck check -a -T \\",
        "     --reference human_mt_consensus.fa \\",
        "     sample1.bam sample2.bam > contamination.tsv",
        "",
        "3) Full outputs (JSON, per-fragment TSV, HTML report):",
        "   contamcheck check \\",
        "     --reference human_mt_consensus.fa \\",
        "     --outdir results/ \\",
        "     sample.bam",
        "",
        "Tip: contamcheck make-toy-data --outdir toy/ creates a small example.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0
    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _settings_from_args(args: argparse.Namespace) -> CheckSettings:
    span_from, span_to = args.span if args.span is not None else (0, None)
    return CheckSettings(
        adna=bool(args.ancient),
        transversions_only=bool(args.transversions),
        span_from=int(span_from),
        span_to=span_to,
        min_diag_posns=int(args.numpos),
        max_distance=args.maxd,
        min_strong=int(args.min_strong),
        allow_few_positions=bool(args.shoot_foot),
        matrix=str(args.matrix),
        open_gap_score=float(args.gap_open),
        extend_gap_score=float(args.gap_extend),
    )


def _write_plots(outdir: Path, summary: Dict[str, Any]) -> None:
    plots_dir = outdir / Path(summary["input"]).name / "plots"
    class_counts_png = plots_dir / "class_counts.png"
    vote_hist_png = plots_dir / "vote_hist.png"
    plot_class_counts(
        counts_strong=summary["counts_strong"],
        counts_all=summary["counts_all"],
        out_png=class_counts_png,
    )
    plot_vote_hist(vote_hist=summary.get("vote_hist", {}), out_png=vote_hist_png)
    summary["plots"] = {
        "class_counts": str(class_counts_png.relative_to(outdir)),
        "vote_hist": str(vote_hist_png.relative_to(outdir)),
    }


def cmd_check(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve() if args.outdir else None
    log_path = _log_path(outdir, "check.log") if outdir is not None else None
    _setup_logging(args.verbose, logfile=log_path)
    logger = logging.getLogger("contamcheck")
    logger.info("contamcheck %s", __version__)

    try:
        settings = _settings_from_args(args)
        ref_name, reference = read_fasta(args.reference)
        logger.info("Contaminant reference %s (%d bp)", ref_name, len(reference))

        if outdir is not None:
            outdir = ensure_outdir(outdir)

        if args.table:
            print(table_header())

        summaries: List[Dict[str, Any]] = []
        for infile in args.inputs:
            summary = check_file(
                infile,
                reference,
                settings=settings,
                consensus_fasta=args.consensus,
                latest_iteration=not bool(args.force),
                skip_duplicates=not bool(args.keep_duplicates),
                outdir=outdir,
                progress=not bool(args.no_progress),
            )
            summaries.append(summary)
            if args.table:
                print(table_row(summary), flush=True)
            else:
                print(format_text(summary), flush=True)

        if outdir is not None:
            for summary in summaries:
                _write_plots(outdir, summary)
            (outdir / "summary.tsv").write_text(format_table(summaries), encoding="utf-8")
            report_path = render_report(
                outdir=outdir,
                version=__version__,
                reference_path=str(args.reference),
                summaries=summaries,
            )
            logger.info("Report written: %s", report_path)
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "check":
        return cmd_check(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
