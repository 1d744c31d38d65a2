"""
Prompt construction for the reasoning engine.
"""

import json
from typing import Any, Dict

RESPONSE_SCHEMA = """{
  "executive_summary": {
    "overall_risk": "Low|Medium|High|Critical",
    "security_posture": "string describing overall security state",
    "key_concerns": ["array of main security concerns - empty if none"]
  },
  "critical_findings": [
    {
      "finding": "string describing the finding",
      "severity": "Critical|High|Medium|Low|Info",
      "impact": "string describing potential impact",
      "location": "file path where this was found"
    }
  ],
  "vulnerability_assessment": [
    {
      "vulnerability": "string describing the vulnerability",
      "type": "string categorizing the vulnerability",
      "risk_level": "Critical|High|Medium|Low|Info",
      "description": "detailed description of the vulnerability"
    }
  ],
  "risk_analysis": {
    "high_risk_items": ["array of high risk items - empty if none"],
    "medium_risk_items": ["array of medium risk items - empty if none"],
    "low_risk_items": ["array of low risk items - empty if none"],
    "risk_factors": ["array of contributing risk factors - empty if none"]
  },
  "recommendations": [
    {
      "recommendation": "string describing the recommendation",
      "priority": "Immediate|High|Medium|Low",
      "effort": "Low|Medium|High",
      "impact": "string describing expected impact of implementing this"
    }
  ],
  "security_score": {
    "score": "number (1-10)",
    "justification": "string explaining the score",
    "factors": ["array of factors contributing to the score"]
  }
}"""


def _issues_section(context: Dict[str, Any]) -> str:
    issues = context.get("security_issues")
    if not issues:
        return ""
    return (
        "\nOpen or past security issues reported against this repository\n"
        "(use them to judge which of these files are most likely affected):\n"
        f"{json.dumps(issues, indent=2)}\n"
    )


def build_chunk_prompt(context: Dict[str, Any]) -> str:
    """Build the security-review prompt for one chunk context.

    Args:
        context: JSON-serializable dict with ``repository``,
            ``analysis_intent``, ``category`` and ``files`` keys, plus
            optional ``security_issues`` summaries

    Returns:
        Prompt text asking for a JSON-only answer
    """
    return f"""You are a senior application security engineer reviewing a repository.
You specialize in secret and credential management, dependency vulnerability
analysis, authentication and authorization flaws, and security
misconfigurations in deployment and configuration files.

Review the following batch of security-relevant files. Only file paths and
their classification are provided; reason about what these files typically
contain and what risks their presence indicates.

Repository: {context.get("repository", "unknown")}
Analysis Intent: {context.get("analysis_intent", "default")}
File Category: {context.get("category", "unknown")}
Files:
{json.dumps(context.get("files", []), indent=2)}
{_issues_section(context)}
IMPORTANT: Respond with ONLY valid JSON. Do not include markdown formatting,
headers, or explanatory text. If no security issues are found, return empty
arrays for findings. Do not create fake or generic findings.

Return a JSON object with the following structure:
{RESPONSE_SCHEMA}"""
