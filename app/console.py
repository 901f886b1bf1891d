# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: command line launcher for ProcLens. loads config (.env, data/config.json, PROCLENS_* env vars, then CLI
flags on top), takes one host snapshot, runs the analysis engine and prints a short colored summary or the
full JSON report. also has small maintenance commands for the result cache and the config file.
exit codes: 0 ok, 1 snapshot failed (process table unreadable), 2 bad arguments.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import argparse  # for parsing command line arguments
import dataclasses  # for applying CLI overrides to the frozen config
import json  # for the JSON report
import logging  # for log setup
import sys  # for exit codes and stdout
from pathlib import Path  # for output / config paths

from colorama import Fore, Style  # colored terminal output
from colorama import init as colorama_init  # enable ANSI codes on Windows terminals
from dotenv import load_dotenv  # .env support

from agent.snapshot import SnapshotError, collect_snapshot
from algorithm.engine import AnalysisEngine, AnalysisReport
from algorithm.result_cache import ResultCache
from app.config import Config, default_config_path, load_config, write_default_config

log = logging.getLogger("proclens")

_SEVERITY_COLORS = {"critical": Fore.RED, "high": Fore.RED, "warning": Fore.YELLOW, "info": Fore.CYAN}


def print_banner() -> None:
    dim, reset = Style.DIM, Style.RESET_ALL
    print(
        f"{dim}┌──────────────────────────────────────────────┐{reset}\n"
        f"{dim}│{reset}{Fore.CYAN}{Style.BRIGHT}          P  r  o  c  L  e  n  s{reset}{dim}              │{reset}\n"
        f"{dim}│{reset}{Fore.MAGENTA}   process classification & risk overview{reset}{dim}     │{reset}\n"
        f"{dim}└──────────────────────────────────────────────┘{reset}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="proclens", description="ProcLens process and network analyzer")
    parser.add_argument("--config", type=Path, help="path to a JSON config file (default: data/config.json)")
    parser.add_argument("--no-inference", action="store_true", help="keyword classification only")
    parser.add_argument("--no-network", action="store_true", help="skip network connection analysis")
    parser.add_argument("--no-profile", action="store_true", help="skip the user profile")
    parser.add_argument("--no-cache", action="store_true", help="do not read or write the result cache")
    parser.add_argument("--max-iterations", type=int, help="max inference rounds")
    parser.add_argument("--max-processes", type=int, help="max processes to analyse (highest cpu first)")
    parser.add_argument("--model", help="inference model name, e.g. gemma2:9b")
    parser.add_argument("--inference-url", help="base URL of the inference service")
    parser.add_argument("-o", "--output", type=Path, help="write the JSON report to this file")
    parser.add_argument("--json", action="store_true", help="print the JSON report instead of the summary")
    parser.add_argument("--init-config", action="store_true", help="write a starter config file and exit")
    parser.add_argument("--clear-cache", action="store_true", help="delete all cached results and exit")
    parser.add_argument("--cache-stats", action="store_true", help="show result cache statistics and exit")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="only print errors")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def setup_logging(quiet: bool = False, verbose: bool = False) -> None:
    level = logging.ERROR if quiet else logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("urllib3").setLevel(logging.WARNING)  # keep connection chatter out of debug output


def apply_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    changes: dict = {}
    if args.no_inference:
        changes["inference_enabled"] = False
    if args.no_network:
        changes["analyze_network"] = False
    if args.no_profile:
        changes["profile_user"] = False
    if args.no_cache:
        changes["cache_enabled"] = False
    if args.max_iterations is not None:
        changes["max_iterations"] = max(1, args.max_iterations)
    if args.max_processes is not None:
        changes["max_processes"] = args.max_processes
    if args.model:
        changes["inference_model"] = args.model
    if args.inference_url:
        changes["inference_url"] = args.inference_url
    return dataclasses.replace(cfg, **changes) if changes else cfg


def print_summary(report: AnalysisReport) -> None:
    reset = Style.RESET_ALL
    outcome = report.classification
    print(
        f"\n{Style.BRIGHT}Processes:{reset} {len(report.processes)} analysed, "
        f"{outcome.keyword_matches} by keyword, {len(outcome.results) - outcome.keyword_matches} by inference/cache, "
        f"{len(outcome.unresolved)} unresolved ({outcome.reason.value})"
    )
    for category, bucket in report.summary.categories.items():
        if bucket.count:
            print(f"  {Fore.CYAN}{category.value:<15}{reset} {bucket.count:>4}  cpu {bucket.total_cpu:5.1f}%  mem {bucket.total_mem:5.1f}%")

    if report.issues:
        print(f"\n{Style.BRIGHT}Configuration issues:{reset}")
        for issue in report.issues:
            color = _SEVERITY_COLORS.get(issue.severity, "")
            print(f"  {color}[{issue.severity}]{reset} {issue.category}: {issue.issue}")

    if report.network is not None:
        net = report.network
        if net.error:
            print(f"\n{Style.BRIGHT}Network:{reset} {Fore.YELLOW}{net.error}{reset}")
        else:
            color = Fore.RED if net.risk_level == "elevated" else Fore.GREEN
            print(
                f"\n{Style.BRIGHT}Network:{reset} {net.total_connections} connections, "
                f"{len(net.listening_ports)} listening, risk {color}{net.risk_level}{reset}"
            )
            for finding in net.findings:
                color = _SEVERITY_COLORS.get(finding.severity, "")
                print(f"  {color}[{finding.severity}]{reset} {finding.recommendation} ({finding.process})")
            for line in net.recommendations:
                print(f"  - {line}")

    if report.profile is not None and report.profile.available:
        p = report.profile
        print(f"\n{Style.BRIGHT}User profile:{reset} {p.profile} ({p.confidence}%, {p.technical_level})")
        if p.description:
            print(f"  {p.description}")

    for failure in outcome.failures:
        print(f"{Fore.YELLOW}note:{reset} {failure}")


def run(args: argparse.Namespace) -> int:
    cfg = apply_overrides(load_config(args.config), args)

    if args.init_config:
        target = args.config or default_config_path(cfg.base_dir)
        if write_default_config(target):
            print(f"wrote {target}")
            return 0
        print(f"{target} already exists, leaving it alone", file=sys.stderr)
        return 1

    if args.clear_cache or args.cache_stats:
        cache = ResultCache(cfg.cache_dir, cfg.cache_ttl_hours, enabled=True)
        if args.clear_cache:
            print(f"removed {cache.clear()} cached result(s) from {cfg.cache_dir}")
        if args.cache_stats:
            print(json.dumps(cache.stats().to_dict(), indent=2))
        return 0

    try:
        snapshot = collect_snapshot(include_network=cfg.analyze_network)
    except SnapshotError as exc:
        log.error("cannot take a process snapshot: %s", exc)
        return 1

    report = AnalysisEngine(cfg).analyze(snapshot)
    payload = json.dumps(report.to_dict(), indent=2, default=str)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload + "\n", encoding="utf-8")
        if not args.quiet:
            print(f"report written to {args.output}")
    if args.json:
        print(payload)
    elif not args.quiet:
        print_summary(report)
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()  # PROCLENS_* settings may live in .env
    args = build_parser().parse_args(argv)
    setup_logging(args.quiet, args.verbose)
    colorama_init()
    if not (args.quiet or args.json):
        print_banner()
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
