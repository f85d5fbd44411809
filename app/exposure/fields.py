"""
Typed access layer over raw open-exposure export rows.

Column names are a contract with the upstream export generator and are
matched exactly (case and spacing). Every lookup goes through RawRecord so a
missing column always reads as an empty string.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

# Identity
COL_CLAIM_NUMBER = "Claim#"
COL_CLAIMANT = "Claimant"
COL_COVERAGE = "Coverage"
COL_STATUS = "Status"
COL_EXPOSURE_CATEGORY = "Exposure Category"
COL_TYPE_GROUP = "Type Group"
COL_TEAM_GROUP = "Team Group"
COL_ADJUSTER = "Adjuster Assigned"
COL_AREA = "Area#"
COL_STATE = "Accident Location State"
COL_ACCIDENT_DESCRIPTION = "Description of Accident"
COL_INJURY_SEVERITY = "Injury Severity"

# Age - the export has shipped this column under several headers
COL_DAYS_OPEN = ("Open/Closed Days", "Open/Closed Days ", "Days")
COL_AGE = "Age"

# Financials
COL_OPEN_RESERVES = "Open Reserves"
COL_LOW_EVAL = "Low"
COL_HIGH_EVAL = "High"
COL_TOTAL_PAID = "Total Paid"

# CP1
COL_OVERALL_CP1 = "Overall CP1 Flag"
COL_CP1_EXPOSURE = "CP1 Exposure Flag"
COL_CP1_CLAIM = "CP1 Claim Flag"

# Negotiation / litigation
COL_EVALUATION_PHASE = "Evaluation Phase"
COL_DEMAND_TYPE = "Demand Type"
COL_BI_STATUS = "BI Status"
COL_DAYS_SINCE_NEGOTIATION = "Days Since Negotiation Date"
COL_LITIGATION = "In Litigation Indicator"
COL_TRIGGER_TOTAL = "TRIGGER TOTAL"

# Claimant attributes feeding derived flags
COL_CLAIMANT_AGE = "Claimant Age"
COL_END_PAIN_LEVEL = "End Pain Level"

# Severity flag columns, keyed by ExposureRecord attribute name
SEVERITY_FLAG_COLUMNS: Dict[str, str] = {
    "fatality": "FATALITY",
    "surgery": "SURGERY",
    "meds_vs_limits": "MEDS VS LIMITS",
    "hospitalization": "HOSPITALIZATION",
    "loss_of_consciousness": "LOSS OF CONSCIOUSNESS",
    "aggravating_factors": "AGGRAVATING FACTORS",
    "objective_injuries": "OBJECTIVE INJURIES",
    "pedestrian_pregnancy": "PEDESTRIAN/MOTORCYCLIST/BICYCLIST/PREGNANCY",
    "life_care_planner": "LIFE CARE PLANNER",
    "injections": "INJECTIONS",
    "ems_heavy_impact": "EMS + HEAVY IMPACT",
    "confirmed_fractures": "Injury Incident - Confirmed Fractures",
    "lacerations": "Injury Incident - Lacerations",
    "prior_surgery": "Injury Incident - Prior Surgery",
    "pregnancy": "Injury Incident - Pregnancy",
}

# Flags derived from claimant attributes rather than read from a column
DERIVED_FLAGS = ("pain_level_5_plus", "eggshell_69_plus")

# All 17 severity flags in reporting order
SEVERITY_FLAGS = tuple(SEVERITY_FLAG_COLUMNS) + DERIVED_FLAGS


class RawRecord:
    """
    Read-only view of one export row.

    Accessors return stripped strings and never raise on missing columns.
    Parsing into typed values is the normalizer's job.
    """

    __slots__ = ("_row",)

    def __init__(self, row: Optional[Mapping[str, Any]]) -> None:
        self._row = row or {}

    def get(self, column: str) -> str:
        """Get a column value as a stripped string ('' when missing)."""
        value = self._row.get(column)
        if value is None:
            return ""
        return str(value).strip()

    def first(self, columns: Iterable[str]) -> str:
        """Get the first non-blank value among alternative column headers."""
        for column in columns:
            value = self.get(column)
            if value:
                return value
        return ""

    @property
    def claim_number(self) -> str:
        return self.get(COL_CLAIM_NUMBER)

    @property
    def claimant(self) -> str:
        return self.get(COL_CLAIMANT)

    @property
    def coverage(self) -> str:
        return self.get(COL_COVERAGE)

    @property
    def status(self) -> str:
        return self.get(COL_STATUS)

    @property
    def exposure_category(self) -> str:
        return self.get(COL_EXPOSURE_CATEGORY)

    @property
    def type_group(self) -> str:
        return self.get(COL_TYPE_GROUP)

    @property
    def team_group(self) -> str:
        return self.get(COL_TEAM_GROUP)

    @property
    def adjuster(self) -> str:
        return self.get(COL_ADJUSTER)

    @property
    def area(self) -> str:
        return self.get(COL_AREA)

    @property
    def state(self) -> str:
        return self.get(COL_STATE)

    @property
    def accident_description(self) -> str:
        return self.get(COL_ACCIDENT_DESCRIPTION)

    @property
    def injury_severity(self) -> str:
        return self.get(COL_INJURY_SEVERITY)

    @property
    def days_open(self) -> str:
        return self.first(COL_DAYS_OPEN)

    @property
    def age_label(self) -> str:
        return self.get(COL_AGE)

    @property
    def open_reserves(self) -> str:
        return self.get(COL_OPEN_RESERVES)

    @property
    def low_eval(self) -> str:
        return self.get(COL_LOW_EVAL)

    @property
    def high_eval(self) -> str:
        return self.get(COL_HIGH_EVAL)

    @property
    def total_paid(self) -> str:
        return self.get(COL_TOTAL_PAID)

    @property
    def overall_cp1(self) -> str:
        return self.get(COL_OVERALL_CP1)

    @property
    def cp1_exposure_flag(self) -> str:
        return self.get(COL_CP1_EXPOSURE)

    @property
    def cp1_claim_flag(self) -> str:
        return self.get(COL_CP1_CLAIM)

    @property
    def evaluation_phase(self) -> str:
        return self.get(COL_EVALUATION_PHASE)

    @property
    def demand_type(self) -> str:
        return self.get(COL_DEMAND_TYPE)

    @property
    def bi_status(self) -> str:
        return self.get(COL_BI_STATUS)

    @property
    def days_since_negotiation(self) -> str:
        return self.get(COL_DAYS_SINCE_NEGOTIATION)

    @property
    def litigation_indicator(self) -> str:
        return self.get(COL_LITIGATION)

    @property
    def trigger_total(self) -> str:
        return self.get(COL_TRIGGER_TOTAL)

    @property
    def claimant_age(self) -> str:
        return self.get(COL_CLAIMANT_AGE)

    @property
    def end_pain_level(self) -> str:
        return self.get(COL_END_PAIN_LEVEL)

    def severity_flag(self, name: str) -> str:
        """Get the raw value of a column-backed severity flag by attribute name."""
        return self.get(SEVERITY_FLAG_COLUMNS[name])
