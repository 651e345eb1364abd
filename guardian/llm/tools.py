"""
Tool Catalog — the CRM tools offered to models on tool_call requests.

Definitions only: the catalog describes each tool's name and argument
schema. Executing a call is left to the application that owns the data.

Usage:
    from guardian.llm.tools import AI_TOOLS, ToolCategory, get_tools_by_category

    request = ChatRequest(
        messages=[Message.user("Find the Hendersons in Media, PA")],
        tools=get_tools_by_category(ToolCategory.CUSTOMER),
        task="tool_call",
    )
"""

from __future__ import annotations

from enum import Enum

from guardian.llm.types import ToolDefinition


class ToolCategory(str, Enum):
    CUSTOMER = "customer"
    WEATHER = "weather"
    PROPERTY = "property"
    COMMUNICATION = "communication"
    ANALYTICS = "analytics"


_PIPELINE_STAGES = ["new", "contacted", "qualified", "proposal", "negotiation", "closed"]


def _string(description: str, enum: list[str] | None = None) -> dict:
    spec: dict = {"type": "string", "description": description}
    if enum:
        spec["enum"] = enum
    return spec


def _number(description: str) -> dict:
    return {"type": "number", "description": description}


def _object(properties: dict, required: list[str] | None = None) -> dict:
    schema: dict = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

AI_TOOLS: list[ToolDefinition] = [
    # --- Customer ---
    ToolDefinition(
        name="get_customer",
        description=(
            "Retrieve detailed information about a specific customer including their "
            "property, insurance, pipeline status, and interaction history."
        ),
        parameters=_object(
            {"customerId": _string("The unique identifier of the customer")},
            ["customerId"],
        ),
    ),
    ToolDefinition(
        name="search_customers",
        description="Search for customers by name, address, phone, email, or other criteria.",
        parameters=_object(
            {
                "query": _string("Search query (name, address, phone, or email)"),
                "status": _string(
                    "Filter by status",
                    ["lead", "prospect", "customer", "closed-won", "closed-lost"],
                ),
                "stage": _string("Filter by pipeline stage", _PIPELINE_STAGES),
                "limit": _number("Maximum number of results to return (default: 10)"),
            },
            ["query"],
        ),
    ),
    ToolDefinition(
        name="update_customer_stage",
        description="Update a customer's pipeline stage.",
        parameters=_object(
            {
                "customerId": _string("The customer ID"),
                "stage": _string("New pipeline stage", _PIPELINE_STAGES),
                "notes": _string("Optional notes about the stage change"),
            },
            ["customerId", "stage"],
        ),
    ),
    ToolDefinition(
        name="schedule_followup",
        description="Schedule a follow-up action for a customer.",
        parameters=_object(
            {
                "customerId": _string("The customer ID"),
                "action": _string("Description of the follow-up action"),
                "date": _string("Date for the follow-up (ISO format)"),
                "priority": _string("Priority level", ["low", "medium", "high", "critical"]),
            },
            ["customerId", "action", "date"],
        ),
    ),
    # --- Weather ---
    ToolDefinition(
        name="check_weather_events",
        description="Check for recent weather events (hail, wind, storms) at a specific location.",
        parameters=_object(
            {
                "address": _string("Street address to check"),
                "city": _string("City name"),
                "state": _string("State abbreviation (e.g., PA, NJ)"),
                "zipCode": _string("ZIP code"),
                "daysBack": _number("Number of days to look back (default: 90)"),
            },
            ["zipCode"],
        ),
    ),
    ToolDefinition(
        name="get_storm_opportunities",
        description="Get list of storm-affected areas with potential opportunities.",
        parameters=_object(
            {
                "state": _string("State to search (e.g., PA, NJ, VA)"),
                "severity": _string(
                    "Minimum severity to include",
                    ["minor", "moderate", "severe", "catastrophic"],
                ),
                "daysBack": _number("Number of days to look back (default: 30)"),
            },
            ["state"],
        ),
    ),
    # --- Property ---
    ToolDefinition(
        name="get_property_details",
        description="Get detailed property information from public records.",
        parameters=_object(
            {
                "address": _string("Property street address"),
                "city": _string("City name"),
                "state": _string("State abbreviation"),
                "zipCode": _string("ZIP code"),
            },
            ["address", "city", "state"],
        ),
    ),
    ToolDefinition(
        name="estimate_roof_value",
        description="Estimate the value of a roof replacement based on property details.",
        parameters=_object(
            {
                "squareFootage": _number("Property square footage"),
                "roofType": _string(
                    "Type of roofing material",
                    [
                        "3-Tab Shingle", "Architectural Shingle", "Metal Standing Seam",
                        "Slate", "Tile", "Cedar Shake",
                    ],
                ),
                "stories": _number("Number of stories (affects pitch/complexity)"),
                "state": _string("State (affects labor costs)"),
            },
            ["squareFootage", "roofType"],
        ),
    ),
    # --- Communication ---
    ToolDefinition(
        name="generate_script",
        description="Generate a customized sales script for a specific customer situation.",
        parameters=_object(
            {
                "customerId": _string("Customer ID to personalize the script for"),
                "scriptType": _string(
                    "Type of script to generate",
                    ["initial_contact", "follow_up", "objection_handling", "closing", "storm_outreach"],
                ),
                "objections": {
                    "type": "array",
                    "description": "Specific objections to address",
                    "items": _string("An objection text to address in the script"),
                },
            },
            ["customerId", "scriptType"],
        ),
    ),
    ToolDefinition(
        name="draft_email",
        description="Draft a personalized email for a customer.",
        parameters=_object(
            {
                "customerId": _string("Customer ID"),
                "emailType": _string(
                    "Type of email",
                    ["introduction", "follow_up", "proposal", "thank_you", "storm_alert"],
                ),
                "customNotes": _string("Additional context to include"),
            },
            ["customerId", "emailType"],
        ),
    ),
    # --- Analytics ---
    ToolDefinition(
        name="get_pipeline_summary",
        description="Get a summary of the current sales pipeline.",
        parameters=_object(
            {
                "repId": _string("Filter by specific rep (optional)"),
                "timeframe": _string(
                    "Time period to analyze",
                    ["today", "week", "month", "quarter", "year"],
                ),
            },
        ),
    ),
    ToolDefinition(
        name="get_hot_leads",
        description="Get list of high-priority leads requiring immediate attention.",
        parameters=_object(
            {
                "limit": _number("Maximum number of leads to return (default: 10)"),
                "minScore": _number("Minimum lead score (default: 80)"),
            },
        ),
    ),
]

# Tool-name prefixes per category.
_CATEGORY_PREFIXES: dict[ToolCategory, tuple[str, ...]] = {
    ToolCategory.CUSTOMER: ("get_customer", "search_customers", "update_customer", "schedule_followup"),
    ToolCategory.WEATHER: ("check_weather", "get_storm"),
    ToolCategory.PROPERTY: ("get_property", "estimate_roof"),
    ToolCategory.COMMUNICATION: ("generate_script", "draft_email"),
    ToolCategory.ANALYTICS: ("get_pipeline", "get_hot_leads"),
}


def get_tools_by_category(category: ToolCategory | str) -> list[ToolDefinition]:
    """Catalog tools in one category, in catalog order. Unknown names raise ValueError."""
    prefixes = _CATEGORY_PREFIXES[ToolCategory(category)]
    return [tool for tool in AI_TOOLS if tool.name.startswith(prefixes)]


def get_tool(name: str) -> ToolDefinition | None:
    """Look up one catalog tool by exact name."""
    for tool in AI_TOOLS:
        if tool.name == name:
            return tool
    return None
