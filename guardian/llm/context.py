"""
Customer context — the read-only aggregate injected into chat prompts.

CustomerContext is assembled upstream (CRM, weather feed, interaction
log) and validated here at the boundary. The router never mutates it;
it only renders it to text with the pure functions below.

Usage:
    from guardian.llm.context import CustomerContext, build_system_prompt

    context = CustomerContext.model_validate(payload)
    prompt = build_system_prompt(context)
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DateLike = Union[datetime, date, str]

COMPANY_INTRO = (
    "You are an AI assistant for Guardian Roofing & Siding, a storm damage "
    "restoration company serving PA, NJ, DE, MD, VA, and NY."
)

MAX_INTERACTIONS = 5


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class CustomerInfo(_Frozen):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = Field("", alias="zipCode")


class PropertyInfo(_Frozen):
    type: Optional[str] = None
    year_built: Optional[int] = Field(None, alias="yearBuilt")
    square_footage: Optional[int] = Field(None, alias="squareFootage")
    roof_type: Optional[str] = Field(None, alias="roofType")
    roof_age: Optional[int] = Field(None, alias="roofAge")
    property_value: Optional[float] = Field(None, alias="propertyValue")


class InsuranceInfo(_Frozen):
    carrier: Optional[str] = None
    policy_type: Optional[str] = Field(None, alias="policyType")
    deductible: Optional[float] = None


class PipelineInfo(_Frozen):
    status: str = "new"
    stage: str = "lead"
    lead_score: int = Field(0, alias="leadScore")
    urgency_score: int = Field(0, alias="urgencyScore")
    profit_potential: float = Field(0, alias="profitPotential")
    churn_risk: float = Field(0, alias="churnRisk")
    assigned_rep: Optional[str] = Field(None, alias="assignedRep")
    last_contact: Optional[DateLike] = Field(None, alias="lastContact")
    next_action: Optional[str] = Field(None, alias="nextAction")
    next_action_date: Optional[DateLike] = Field(None, alias="nextActionDate")


class WeatherEventInfo(_Frozen):
    id: str
    type: str
    date: DateLike
    severity: str
    hail_size: Optional[float] = Field(None, alias="hailSize")
    wind_speed: Optional[float] = Field(None, alias="windSpeed")
    damage_reported: bool = Field(False, alias="damageReported")


class InteractionInfo(_Frozen):
    id: str
    type: str
    date: DateLike
    summary: str
    outcome: Optional[str] = None
    objections: list[str] = Field(default_factory=list)
    sentiment: Optional[Literal["positive", "neutral", "negative"]] = None


class IntelItemInfo(_Frozen):
    id: str
    category: str
    title: str
    content: str
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    actionable: bool = False


class CustomerContext(_Frozen):
    """Everything the assistant should know about one customer."""
    customer: CustomerInfo
    property: PropertyInfo = Field(default_factory=PropertyInfo)
    insurance: InsuranceInfo = Field(default_factory=InsuranceInfo)
    pipeline: PipelineInfo = Field(default_factory=PipelineInfo)
    weather_events: list[WeatherEventInfo] = Field(default_factory=list, alias="weatherEvents")
    interactions: list[InteractionInfo] = Field(default_factory=list)
    intel_items: list[IntelItemInfo] = Field(default_factory=list, alias="intelItems")


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def _or(value: object, default: str) -> str:
    return default if value is None or value == "" else str(value)


def format_money(value: Optional[float], default: str = "Unknown") -> str:
    if value is None:
        return default
    return f"{value:,.0f}"


def format_date(value: Optional[DateLike], default: str = "Never") -> str:
    """US short date (M/D/YYYY); non-ISO strings pass through unchanged."""
    if value is None:
        return default
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return f"{value.month}/{value.day}/{value.year}"


def _weather_line(event: WeatherEventInfo) -> str:
    line = f"- {event.type.upper()} on {format_date(event.date)}: {event.severity} severity"
    if event.hail_size:
        line += f', {event.hail_size:g}" hail'
    if event.wind_speed:
        line += f", {event.wind_speed:g} mph winds"
    return line


def _interaction_line(interaction: InteractionInfo) -> str:
    line = f"- {format_date(interaction.date)} ({interaction.type}): {interaction.summary}"
    if interaction.objections:
        line += f" [Objections: {', '.join(interaction.objections)}]"
    return line


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def get_context_summary(context: CustomerContext) -> str:
    """A short multi-line summary, e.g. for CLI output or logs."""
    c, p, prop, ins = context.customer, context.pipeline, context.property, context.insurance
    return "\n".join([
        f"Customer: {c.name}",
        f"Location: {c.city}, {c.state}",
        f"Pipeline: {p.status} / {p.stage}",
        f"Lead Score: {p.lead_score}/100",
        f"Roof: {_or(prop.roof_type, 'Unknown')}, {_or(prop.roof_age, 'Unknown')} years old",
        f"Insurance: {_or(ins.carrier, 'Unknown')} ({_or(ins.policy_type, 'Unknown')})",
        f"Last Contact: {format_date(p.last_contact)}",
        f"Next Action: {_or(p.next_action, 'None')}",
    ])


def build_system_prompt(context: CustomerContext) -> str:
    """Render the full customer context as one system prompt."""
    c, prop, ins, p = context.customer, context.property, context.insurance, context.pipeline

    sqft = f"{prop.square_footage:,}" if prop.square_footage is not None else "Unknown"
    weather = "\n".join(_weather_line(e) for e in context.weather_events)
    interactions = "\n".join(
        _interaction_line(i) for i in context.interactions[:MAX_INTERACTIONS]
    )
    intel = "\n".join(
        f"- [{i.priority.upper()}] {i.title}: {i.content}"
        for i in context.intel_items
        if i.priority in ("high", "critical")
    )

    return f"""{COMPANY_INTRO}

CURRENT CUSTOMER CONTEXT:
=========================
Name: {c.name}
Location: {c.city}, {c.state} {c.zip_code}
Phone: {_or(c.phone, 'N/A')}
Email: {_or(c.email, 'N/A')}

PROPERTY DETAILS:
- Type: {_or(prop.type, 'Unknown')}
- Year Built: {_or(prop.year_built, 'Unknown')}
- Size: {sqft} sqft
- Roof Type: {_or(prop.roof_type, 'Unknown')}
- Roof Age: {_or(prop.roof_age, 'Unknown')} years
- Property Value: ${format_money(prop.property_value)}

INSURANCE:
- Carrier: {_or(ins.carrier, 'Unknown')}
- Policy: {_or(ins.policy_type, 'Unknown')}
- Deductible: ${format_money(ins.deductible)}

PIPELINE STATUS:
- Status: {p.status}
- Stage: {p.stage}
- Lead Score: {p.lead_score}/100
- Urgency: {p.urgency_score}/100
- Profit Potential: ${format_money(p.profit_potential, '0')}
- Churn Risk: {p.churn_risk:g}%
- Assigned Rep: {_or(p.assigned_rep, 'Unassigned')}
- Last Contact: {format_date(p.last_contact)}
- Next Action: {_or(p.next_action, 'None')}

WEATHER EVENTS:
{weather or 'No recent events recorded'}

RECENT INTERACTIONS:
{interactions or 'No interaction history'}

KEY INTELLIGENCE:
{intel or 'No active intel'}

YOUR ROLE:
- Provide actionable insights and next-step recommendations
- Be specific to this customer's situation
- Consider their position in the pipeline
- Factor in weather events and property condition
- Help the rep close this deal effectively
- Be concise but thorough"""
