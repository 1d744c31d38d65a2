#!/usr/bin/env python3
"""
Repository Security Triage - command-line entry point.

Discovers (or reads) a repository's file paths, selects the security-relevant
ones for the requested analysis intent, analyzes them chunk by chunk and
writes a JSON and/or Markdown security report.

Usage:
    python scripts/run_security_analysis.py owner/repo --intent secrets
    python scripts/run_security_analysis.py owner/repo --paths-file paths.txt
    python scripts/run_security_analysis.py owner/a owner/b --profile quick

Exit codes:
    0  completed, no critical or high findings
    1  completed with critical or high findings
    2  configuration error
"""

import argparse
import contextlib
import logging
import re
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from config_loader import build_unified_config, validate_config
from exceptions import ConfigurationError
from github_file_provider import GitHubFileProvider
from pipeline import PipelineContext, PipelineOrchestrator, build_default_stages
from reasoning import LLMManager, ReasoningEngine
from reporting import print_summary
from streaming_analyzer import AnalysisCallbacks, console_callbacks

logger = logging.getLogger(__name__)

_REPOSITORY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


def parse_repository(repository: str) -> str:
    """Normalize ``owner/repo`` (a full GitHub URL is also accepted).

    Raises:
        ValueError: If the identifier is not of the form ``owner/repo``
    """
    value = repository.strip()
    value = re.sub(r"^https?://github\.com/", "", value)
    value = value.rstrip("/")
    if value.endswith(".git"):
        value = value[:-4]
    if not _REPOSITORY_PATTERN.match(value):
        raise ValueError(f"Repository must be in 'owner/repo' form, got {repository!r}")
    return value


def read_paths_file(path: str) -> List[str]:
    """One path per line; blank lines and ``#`` comments are ignored."""
    with open(path, "r", encoding="utf-8") as fh:
        lines = [line.strip() for line in fh]
    return [line for line in lines if line and not line.startswith("#")]


def analyze_repository(
    repository: str,
    config: Dict[str, Any],
    paths: Optional[List[str]] = None,
    callbacks: Optional[AnalysisCallbacks] = None,
    cancel_event: Optional[threading.Event] = None,
    file_provider: Any = None,
) -> PipelineContext:
    """Run the full triage pipeline for one repository.

    Collaborators are opened for the duration of this call only: the
    GitHub session when paths must be discovered, the LLM client when
    ``enable_reasoning`` is set.

    Args:
        repository: ``owner/repo``
        config: Flat config from ``build_unified_config``
        paths: Pre-listed candidate paths; discovery is skipped when given
        callbacks: Progress hooks for chunk analysis
        cancel_event: Stops chunk analysis between chunks when set
        file_provider: Already-open provider to use instead of a new one

    Returns:
        The final pipeline context (``verdict``, ``report``, ``report_paths``)

    Raises:
        ValueError: If *repository* is malformed
        ConfigurationError: If the config has errors or no reasoning
            provider can be initialized while reasoning is enabled
    """
    repository = parse_repository(repository)

    errors = []
    for issue in validate_config(config):
        if issue.startswith("ERROR:"):
            errors.append(issue)
            logger.error(issue)
        else:
            logger.warning(issue)
    if errors:
        raise ConfigurationError("; ".join(errors))

    with contextlib.ExitStack() as stack:
        reasoning_engine = None
        if config.get("enable_reasoning"):
            llm = stack.enter_context(LLMManager(config))
            reasoning_engine = ReasoningEngine.from_config(llm, config)

        if file_provider is None and paths is None:
            file_provider = stack.enter_context(GitHubFileProvider.from_config(config))

        ctx = PipelineContext(
            config=config,
            repository=repository,
            analysis_intent=config.get("analysis_intent", "default"),
            paths=list(paths) if paths is not None else None,
            file_provider=file_provider,
            reasoning_engine=reasoning_engine,
            callbacks=callbacks,
            cancel_event=cancel_event,
        )
        orchestrator = PipelineOrchestrator(build_default_stages(config), config)
        ctx, _ = orchestrator.run(repository, ctx)

    return ctx


def scan_multiple_repositories(
    repositories: List[str],
    config: Dict[str, Any],
    callbacks: Optional[AnalysisCallbacks] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """Analyze several repositories; one failure never stops the others.

    Returns:
        Dict with ``total_repos_scanned``, ``successful_scans``,
        ``failed_scans`` and one ``results`` record per repository
    """
    results = []
    for repository in repositories:
        if cancel_event is not None and cancel_event.is_set():
            results.append({"repository": repository, "status": "error", "error": "Scan cancelled"})
            continue
        try:
            ctx = analyze_repository(repository, config, callbacks=callbacks, cancel_event=cancel_event)
        except Exception as e:
            logger.error("Scan of %s failed: %s: %s", repository, type(e).__name__, e)
            results.append({"repository": repository, "status": "error", "error": str(e)})
            continue

        if ctx.verdict is None:
            results.append(
                {"repository": repository, "status": "error", "error": "; ".join(ctx.errors) or "No verdict produced"}
            )
            continue

        results.append(
            {
                "repository": repository,
                "status": "success",
                "overall_risk": ctx.verdict.overall_risk.value,
                "total_findings": ctx.verdict.total_findings,
                "partial": ctx.partial or ctx.verdict.failed_chunks > 0 or ctx.verdict.cancelled,
                "failed_stages": list(ctx.failed_stages),
                "report_paths": dict(ctx.report_paths),
                "report": ctx.report,
            }
        )

    return {
        "total_repos_scanned": len(repositories),
        "successful_scans": len([r for r in results if r["status"] == "success"]),
        "failed_scans": len([r for r in results if r["status"] == "error"]),
        "results": results,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Repository Security Triage - classify, chunk and analyze security-relevant files"
    )
    parser.add_argument("repository", nargs="+", help="Repository to analyze (owner/repo); several may be given")
    parser.add_argument(
        "--intent",
        choices=["secrets", "vulnerabilities", "dependencies", "code-patterns", "default"],
        help="Analysis intent (default: from profile/config, else 'default')",
    )
    parser.add_argument("--paths-file", help="Read candidate paths from this file instead of listing the repository")
    parser.add_argument("--profile", help="Configuration profile (e.g. standard, quick, deep)")
    parser.add_argument("--provider", help="Reasoning provider (anthropic, openai, gemini, ollama)")
    parser.add_argument("--model", help="Reasoning model override")
    parser.add_argument(
        "--enable-reasoning",
        action="store_true",
        default=False,
        help="Send each chunk to the reasoning engine in addition to heuristics",
    )
    parser.add_argument("--max-files", type=int, help="Override the intent's file limit")
    parser.add_argument("--output-dir", help="Output directory for reports (default: .triage/reports)")
    parser.add_argument("--format", choices=["json", "markdown", "all"], help="Report format (default: all)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the security triage"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.paths_file and len(args.repository) > 1:
        parser.error("--paths-file can only be used with a single repository")

    config = build_unified_config(cli_args=args)

    cancel_event = threading.Event()

    def _request_cancel(signum, frame):
        logger.warning("Interrupt received; finishing the current chunk and stopping")
        cancel_event.set()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    previous_handler = signal.signal(signal.SIGINT, _request_cancel)
    try:
        return _run(args, config, cancel_event)
    finally:
        signal.signal(signal.SIGINT, previous_handler)


def _run(args: argparse.Namespace, config: Dict[str, Any], cancel_event: threading.Event) -> int:
    if len(args.repository) > 1:
        summary = scan_multiple_repositories(args.repository, config, console_callbacks(), cancel_event)
        print(f"\nScanned {summary['total_repos_scanned']} repositories: "
              f"{summary['successful_scans']} succeeded, {summary['failed_scans']} failed")
        for record in summary["results"]:
            if record["status"] == "success":
                partial = " (partial)" if record["partial"] else ""
                print(f"  {record['repository']}: {record['overall_risk']} ({record['total_findings']} findings){partial}")
            else:
                print(f"  {record['repository']}: error: {record['error']}")
        high_risk = any(r.get("overall_risk") in ("critical", "high") for r in summary["results"])
        if high_risk:
            return 1
        incomplete = summary["failed_scans"] or any(r.get("failed_stages") for r in summary["results"])
        return 2 if incomplete else 0

    paths = read_paths_file(args.paths_file) if args.paths_file else None
    try:
        ctx = analyze_repository(
            args.repository[0],
            config,
            paths=paths,
            callbacks=console_callbacks(),
            cancel_event=cancel_event,
        )
    except (ConfigurationError, ValueError) as e:
        logger.error("%s", e)
        return 2

    if ctx.verdict is None or ctx.report is None:
        for error in ctx.errors:
            logger.error(error)
        return 2

    print_summary(ctx.report, ctx.verdict)
    for fmt, path in ctx.report_paths.items():
        print(f"💾 {fmt}: {path}")

    if ctx.verdict.overall_risk.value in ("critical", "high"):
        return 1
    if ctx.failed_stages:
        for error in ctx.errors:
            logger.error(error)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
