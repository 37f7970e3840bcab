"""Structured output schemas for analysis tasks."""

FINDINGS_OUTPUT_SCHEMA = {
    "name": "report_findings",
    "description": "Report structured performance findings observed in one data source",
    "input_schema": {
        "type": "object",
        "properties": {
            "findings": {
                "type": "array",
                "description": "Performance issues observed in the data",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {
                            "type": "string",
                            "description": "Stable identifier, e.g. 'har-1'"
                        },
                        "kind": {
                            "type": "string",
                            "enum": ["bottleneck", "waste", "opportunity"],
                            "description": "bottleneck=blocks the metric, waste=unneeded work, opportunity=possible improvement"
                        },
                        "metric": {
                            "type": "string",
                            "enum": ["LCP", "FCP", "TBT", "CLS", "INP", "TTFB"],
                            "description": "Metric this finding affects"
                        },
                        "description": {
                            "type": "string",
                            "description": "One sentence naming the issue and the resource involved"
                        },
                        "evidence": {
                            "type": "object",
                            "properties": {
                                "source": {"type": "string", "description": "Data source, e.g. 'har' or 'psi.audits'"},
                                "reference": {"type": "string", "description": "File name plus measured value, e.g. 'app.js 320 KB'"},
                                "confidence": {"type": "number", "minimum": 0, "maximum": 1}
                            },
                            "required": ["source", "reference", "confidence"]
                        },
                        "estimatedImpact": {
                            "type": "object",
                            "properties": {
                                "reduction": {"type": "number", "description": "Expected improvement in metric units (ms, or score for CLS)"},
                                "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                                "calculation": {"type": "string", "description": "How the reduction was derived"}
                            },
                            "required": ["reduction", "confidence"]
                        },
                        "reasoning": {
                            "type": "object",
                            "properties": {
                                "observation": {"type": "string"},
                                "diagnosis": {"type": "string"},
                                "mechanism": {"type": "string"},
                                "solution": {"type": "string"}
                            }
                        },
                        "rootCause": {
                            "type": "boolean",
                            "description": "True if this issue is believed to be fundamental rather than a symptom"
                        }
                    },
                    "required": ["id", "kind", "metric", "description", "evidence", "estimatedImpact"]
                }
            }
        },
        "required": ["findings"]
    }
}
