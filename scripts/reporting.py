"""
Security Triage Report Generation.

Turns an ``AggregatedVerdict`` into the repository security report and
renders it for humans and machines.

Functions:
    verdict_to_dict: Serialize a verdict to a JSON-compatible dict
    build_security_report: Build the structured repository report
    generate_markdown_report: Render a report as Markdown
    save_results: Write JSON and/or Markdown reports to disk
    print_summary: Print a run summary to the console
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from github_file_provider import summarize_issue
from models import AggregatedVerdict, RiskLevel, Severity

logger = logging.getLogger(__name__)

_SEVERITY_ORDER = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}

SEVERITY_ICONS = {"critical": "🔴", "high": "🟠", "medium": "🟡", "low": "🟢", "info": "⚪"}

SECURITY_POSTURE = {
    RiskLevel.CRITICAL: "Critical exposure: sensitive material or exploitable configuration requires immediate remediation.",
    RiskLevel.HIGH: "Weak: high-severity issues should be fixed before the next release.",
    RiskLevel.MEDIUM: "Moderate: several files need a security review.",
    RiskLevel.LOW: "Good: only low-severity review items were found.",
    RiskLevel.SAFE: "No security issues were identified in the analyzed files.",
}


def verdict_to_dict(verdict: AggregatedVerdict) -> Dict[str, Any]:
    return verdict.to_dict()


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(item for item in items if item))


def build_security_report(
    verdict: AggregatedVerdict,
    repository: str,
    analysis_intent: str = "default",
    scan_date: Optional[str] = None,
    failed_stages: Optional[List[str]] = None,
    security_issues: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Build the structured security report for one run.

    Findings from every chunk are ordered by severity (stable within a
    severity) and numbered ``SEC-001``, ``SEC-002``, ...  Reasoning-engine
    output, when present, contributes key concerns, recommendations and
    risk-analysis items.

    Args:
        verdict: The aggregated verdict of the run
        repository: Repository identifier (``owner/repo``)
        analysis_intent: Intent the run was executed with
        scan_date: ISO timestamp; defaults to now (UTC)
        failed_stages: Names of pipeline stages that failed; any makes the
            report partial
        security_issues: Raw GitHub issue-search items to list alongside
            the findings

    Returns:
        JSON-compatible report dict
    """
    entries = []
    for result in verdict.chunk_results:
        for finding in result.findings:
            entries.append((result.category.value, finding))
    entries.sort(key=lambda entry: _SEVERITY_ORDER[entry[1].severity])

    findings = []
    recommendations: List[str] = []
    key_concerns: List[str] = []
    risk_items = {"high": [], "medium": [], "low": []}

    for index, (category, finding) in enumerate(entries, 1):
        location = finding.file_path or ""
        if location and finding.line_number:
            location = f"{location}:{finding.line_number}"

        findings.append(
            {
                "id": f"SEC-{index:03d}",
                "category": category,
                "type": finding.kind.value,
                "severity": finding.severity.value,
                "title": finding.title,
                "description": finding.description,
                "location": location,
                "recommendation": finding.recommendation or "",
            }
        )

        label = f"{finding.title} ({location})" if location else finding.title
        if finding.severity in (Severity.CRITICAL, Severity.HIGH):
            risk_items["high"].append(label)
            key_concerns.append(finding.title)
        elif finding.severity == Severity.MEDIUM:
            risk_items["medium"].append(label)
        elif finding.severity == Severity.LOW:
            risk_items["low"].append(label)

        if finding.recommendation:
            recommendations.append(finding.recommendation)

    security_score = None
    for result in verdict.chunk_results:
        outcome = result.reasoning
        if outcome is None or outcome.analysis is None:
            continue
        analysis = outcome.analysis
        key_concerns.extend(analysis.executive_summary.key_concerns)
        recommendations.extend(r.recommendation for r in analysis.recommendations)
        risk_items["high"].extend(analysis.risk_analysis.high_risk_items)
        risk_items["medium"].extend(analysis.risk_analysis.medium_risk_items)
        risk_items["low"].extend(analysis.risk_analysis.low_risk_items)
        score = analysis.security_score.score
        security_score = score if security_score is None else min(security_score, score)

    counts = verdict.severity_counts
    report = {
        "repository": repository,
        "analysis_intent": analysis_intent,
        "scan_date": scan_date or datetime.now(timezone.utc).isoformat(),
        "executive_summary": {
            "overall_risk": verdict.overall_risk.value,
            "security_posture": SECURITY_POSTURE[verdict.overall_risk],
            "key_concerns": _dedupe(key_concerns),
            "total_issues": counts.total,
            "critical": counts.critical,
            "high": counts.high,
            "medium": counts.medium,
            "low": counts.low,
            "info": counts.info,
            "success_rate": verdict.success_rate,
        },
        "findings": findings,
        "recommendations": _dedupe(recommendations),
        "risk_analysis": {
            "high_risk_items": _dedupe(risk_items["high"]),
            "medium_risk_items": _dedupe(risk_items["medium"]),
            "low_risk_items": _dedupe(risk_items["low"]),
        },
        "summary": verdict.narrative_summary,
    }
    if security_score is not None:
        report["executive_summary"]["security_score"] = security_score
    if security_issues:
        report["security_issues"] = [summarize_issue(item) for item in security_issues]
    if failed_stages:
        report["executive_summary"]["failed_stages"] = list(failed_stages)
    if failed_stages or verdict.failed_chunks or verdict.cancelled:
        report["executive_summary"]["partial"] = True
    return report


def generate_markdown_report(report: Dict[str, Any], include_recommendations: bool = True) -> str:
    """Generate the human-readable Markdown report.

    Args:
        report: Output of :func:`build_security_report`
        include_recommendations: Whether to render the recommendations list

    Returns:
        Markdown-formatted report string
    """
    summary = report["executive_summary"]
    lines = [
        f"# 🔒 Security Report: {report['repository']}",
        "",
        f"**Scan date**: {report['scan_date']}",
        f"**Analysis intent**: {report['analysis_intent']}",
        "",
        "## Executive Summary",
        "",
        f"- **Overall Risk**: {SEVERITY_ICONS.get(summary['overall_risk'], '🟢')} {summary['overall_risk'].title()}",
        f"- **Security Posture**: {summary['security_posture']}",
        f"- **Total Issues**: {summary['total_issues']}",
        f"- **Critical**: {summary['critical']}",
        f"- **High**: {summary['high']}",
        f"- **Medium**: {summary['medium']}",
        f"- **Low**: {summary['low']}",
        f"- **Chunks analyzed**: {summary['success_rate']}%",
    ]
    if "security_score" in summary:
        lines.append(f"- **Security Score**: {summary['security_score']:.1f}/10")
    if summary.get("failed_stages"):
        lines.append(f"- **Note**: failed stages ({', '.join(summary['failed_stages'])}); results are partial")
    elif summary.get("partial"):
        lines.append("- **Note**: some chunks were not analyzed; results are partial")
    lines.append("")

    if summary["key_concerns"]:
        lines.append("### Key Concerns")
        lines.append("")
        lines.extend(f"- {concern}" for concern in summary["key_concerns"])
        lines.append("")

    lines.append("## Findings")
    lines.append("")
    if not report["findings"]:
        lines.append("No findings.")
        lines.append("")
    for finding in report["findings"]:
        lines.append(f"### {finding['id']}: {finding['title']} ({finding['severity'].upper()})")
        lines.append(f"- **Category**: {finding['category']}")
        lines.append(f"- **Type**: {finding['type']}")
        if finding["location"]:
            lines.append(f"- **Location**: `{finding['location']}`")
        lines.append(f"- **Description**: {finding['description']}")
        if finding["recommendation"]:
            lines.append(f"- **Recommendation**: {finding['recommendation']}")
        lines.append("")

    if include_recommendations and report["recommendations"]:
        lines.append("## Recommendations")
        lines.append("")
        lines.extend(f"- {rec}" for rec in report["recommendations"])
        lines.append("")

    if report.get("security_issues"):
        lines.append("## Related Security Issues")
        lines.append("")
        for issue in report["security_issues"]:
            labels = f" [{', '.join(issue['labels'])}]" if issue["labels"] else ""
            lines.append(f"- #{issue['number']} {issue['title']} ({issue['state']}){labels} {issue['url']}".rstrip())
        lines.append("")

    risk = report["risk_analysis"]
    lines.append("## Risk Analysis")
    lines.append("")
    for label, key in (("High", "high_risk_items"), ("Medium", "medium_risk_items"), ("Low", "low_risk_items")):
        lines.append(f"**{label} risk** ({len(risk[key])})")
        lines.extend(f"- {item}" for item in risk[key])
        lines.append("")

    lines.append("---")
    lines.append(f"*Report generated on {report['scan_date']}*")
    return "\n".join(lines) + "\n"


def save_results(
    report: Dict[str, Any],
    verdict: AggregatedVerdict,
    output_dir: str,
    report_format: str = "all",
) -> Dict[str, str]:
    """Save the report in the requested formats.

    Args:
        report: Output of :func:`build_security_report`
        verdict: The verdict the report was built from (embedded in JSON)
        output_dir: Directory to save results to (created if missing)
        report_format: ``json``, ``markdown`` or ``all``

    Returns:
        Mapping of format name to written file path
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    stem = f"security-triage-{report['repository'].replace('/', '_')}-{timestamp}"
    paths: Dict[str, str] = {}

    if report_format in ("json", "all"):
        json_file = output_path / f"{stem}.json"
        with open(json_file, "w", encoding="utf-8") as f:
            json.dump({**report, "verdict": verdict_to_dict(verdict)}, f, indent=2, default=str)
        logger.info("💾 JSON report: %s", json_file)
        paths["json"] = str(json_file)

    if report_format in ("markdown", "all"):
        md_file = output_path / f"{stem}.md"
        with open(md_file, "w", encoding="utf-8") as f:
            f.write(generate_markdown_report(report))
        logger.info("💾 Markdown report: %s", md_file)
        paths["markdown"] = str(md_file)

    return paths


def print_summary(report: Dict[str, Any], verdict: AggregatedVerdict) -> None:
    """Print the run summary to the console."""
    summary = report["executive_summary"]
    print("\n" + "=" * 80)
    print("🔒 REPOSITORY SECURITY TRIAGE - FINAL RESULTS")
    print("=" * 80)
    print(f"📁 Repository: {report['repository']}")
    print(f"🎯 Intent: {report['analysis_intent']}")
    print(f"🕐 Timestamp: {report['scan_date']}")
    print(f"⏱️  Duration: {verdict.total_duration_ms}ms")
    print(f"📦 Chunks: {verdict.processed_chunks}/{verdict.total_chunks} ({verdict.success_rate}% success rate)")
    if verdict.cancelled:
        print("⚠️  Run was cancelled before all chunks were processed")
    if summary.get("failed_stages"):
        print(f"⚠️  Failed stages: {', '.join(summary['failed_stages'])} (results are partial)")
    print()
    print("📊 Findings by Severity:")
    print(f"   🔴 Critical: {summary['critical']}")
    print(f"   🟠 High:     {summary['high']}")
    print(f"   🟡 Medium:   {summary['medium']}")
    print(f"   🟢 Low:      {summary['low']}")
    print(f"   📈 Total:    {summary['total_issues']}")
    print()
    print(f"Overall risk: {SEVERITY_ICONS.get(summary['overall_risk'], '🟢')} {summary['overall_risk'].upper()}")
    print("=" * 80)


__all__ = [
    "verdict_to_dict",
    "build_security_report",
    "generate_markdown_report",
    "save_results",
    "print_summary",
]
