"""User-facing portfolio wording: risk labels, headlines, insight copy, playbooks."""

TITLE = "Portfolio"
SUBTITLE = "Portfolio view for executive decision-making."

RISK_LABELS = {
    "strategic_drift": "Strategic drift",
    "low_health": "Low health score",
    "misalignment": "Strategic misalignment",
    "no_weekly_plan": "No weekly plan",
    "stalled_execution": "Stalled execution",
    "low_signal": "Low signal confidence",
}

# Substrings of alignment "top_misaligned" reasons that indicate stalled execution.
STALLED_MARKERS = ("negat", "stalled", "open loops")


def headline_critical(count: int) -> str:
    return f"{count} workspaces are critical: stabilize execution before scaling output."


def headline_drifting(count: int) -> str:
    return f"Strategic drift detected in {count} workspaces: close loops and realign priorities."


def headline_strong(count: int) -> str:
    return f"Portfolio is stable with {count} strong workspaces: focus on optimization and leverage."


HEADLINE_STABLE = "Portfolio is stable: maintain cadence and monitor alignment."

EMPTY_ROWS = "No portfolio rows available."
EMPTY_INSIGHTS = "No portfolio insights available."

FILTER_LABELS = {
    "all": "All",
    "critical": "Critical",
    "drifting": "Drifting",
    "strong": "Strong",
    "misalignment": "Misalignment",
    "no_plan": "No weekly plan",
}

INSIGHTS = {
    "drift": (
        "Systemic drift",
        "Strategic drift appears in multiple workspaces, indicating execution is diverging from priorities.",
    ),
    "critical": (
        "Health crisis cluster",
        "Multiple workspaces are in critical health, requiring immediate stabilization before optimization.",
    ),
    "misalignment": (
        "Misalignment pattern",
        "Alignment scores are consistently low across the portfolio, suggesting strategy-to-execution mismatch.",
    ),
    "no_plan": (
        "No weekly plan",
        "Weekly strategic moves are missing in several workspaces, reducing operational focus.",
    ),
    "opportunity": (
        "Opportunity cluster",
        "Strong and rising workspaces can be used to transfer winning execution patterns.",
    ),
    "baseline": (
        "Portfolio baseline",
        "No systemic concentration detected. Continue weekly monitoring and maintain strategic hygiene.",
    ),
}

PLAYBOOKS = {
    "drift": {
        "title": "Drift containment plan",
        "steps": [
            "Select one strategic priority for each affected workspace.",
            "Close open approval loops within 24–48 hours.",
            "Cap non-priority WIP for the next 7 days.",
            "Review outcomes and re-score alignment at week end.",
        ],
    },
    "critical": {
        "title": "Critical health recovery",
        "steps": [
            "Freeze optional work and focus on stability actions.",
            "Resolve blocked items and stale decisions first.",
            "Assign single-thread owner per critical workspace.",
            "Track daily progress against a visible metric.",
        ],
    },
    "misalignment": {
        "title": "Alignment reset",
        "steps": [
            "Re-state strategic intent in one sentence.",
            "Map current actions to priorities and remove mismatches.",
            "Define one measurable weekly success metric.",
            "Run one controlled experiment and document outcome.",
        ],
    },
    "no_plan": {
        "title": "Weekly plan bootstrapping",
        "steps": [
            "Generate 3 weekly moves: focus, stability, optimization.",
            "Assign owner and ETA to each move.",
            "Review progress mid-week and end-week.",
        ],
    },
    "opportunity": {
        "title": "Leverage strong performers",
        "steps": [
            "Replicate top-performing workflow pattern to 1 at-risk workspace.",
            "Run one optimization experiment on high-traffic assets.",
            "Share winning playbook in weekly executive review.",
        ],
    },
}
